# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Header collection before signing and merging after signing."""

import logging

from mitmproxy.http import Headers

from awsproxy.aws_signing import AWS_HEADER_PREFIX


logger = logging.getLogger(__name__)


def is_aws_header(name: str) -> bool:
    """True if the header name carries the AWS prefix (any case)."""
    return name.lower().startswith(AWS_HEADER_PREFIX)


def collect_aws_headers(inbound: Headers) -> dict[str, str]:
    """Copy AWS-prefixed inbound headers into a new working set.

    Repeated headers follow first-write-wins: the first value seen for
    a name (compared case-insensitively) is kept and later duplicates
    are ignored.

    Args:
        inbound: Headers as received from the caller.

    Returns:
        Working header set keyed by the first-seen spelling of each name.
    """
    collected: dict[str, str] = {}
    seen: set[str] = set()
    for name, value in inbound.items(multi=True):
        key = name.lower()
        if not is_aws_header(name) or key in seen:
            continue
        seen.add(key)
        collected[name] = value
    return collected


def merge_signed_headers(outgoing: Headers, signed: dict[str, str]) -> None:
    """Merge signer-produced headers into the outgoing set.

    Each signed header replaces every existing value of the same name
    (case-insensitive).  All other headers are left untouched.
    """
    for name, value in signed.items():
        outgoing[name] = value


def log_headers(headers: Headers) -> None:
    """Dump the outgoing header set at debug level."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    for name, value in headers.items(multi=True):
        logger.debug("Outgoing header %s=%s", name, value)
