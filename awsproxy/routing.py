# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Upstream routing from the inbound request path.

The first path segment names the upstream host and the rest is the
upstream path:

    /mybucket.s3.amazonaws.com/studentData?list-type=2
    -> https://mybucket.s3.amazonaws.com/studentData?list-type=2
"""

import logging

from awsproxy.errors import InvalidRequestError
from awsproxy.request import ROOT_PATH, ProxyRequest


logger = logging.getLogger(__name__)


def strip_mount_prefix(path: str, prefix: str) -> str:
    """Remove the proxy's mount prefix from an inbound path.

    Only whole segments are stripped: with prefix ``/aws``, ``/aws/x``
    becomes ``/x`` but ``/awsx`` is left alone.

    Args:
        path: Inbound request path (without query).
        prefix: Mount prefix, e.g. ``/aws``.  Empty means no prefix.

    Returns:
        Path relative to the mount point, ``/`` if nothing remains.
    """
    prefix = prefix.rstrip("/")
    if not prefix:
        return path
    if path == prefix:
        return ROOT_PATH
    if path.startswith(prefix + "/"):
        return path[len(prefix) :]
    return path


def split_host(path: str) -> tuple[str, str]:
    """Split a mount-relative path into upstream host and path.

    Args:
        path: Path with the mount prefix already stripped.

    Returns:
        Tuple of (host, upstream_path).  The upstream path is ``/`` when
        nothing follows the host segment.

    Raises:
        InvalidRequestError: If the first segment is empty or blank.
    """
    trimmed = path[1:] if path.startswith("/") else path
    host, _, rest = trimmed.partition("/")
    if not host.strip():
        raise InvalidRequestError(f"Invalid request URI '{path}'")
    return host, "/" + rest


def route(request: ProxyRequest) -> None:
    """Resolve the upstream host and path for a request.

    Sets ``target_host`` and ``upstream_path`` and resets the tracked
    ``path`` to ``ROOT_PATH`` so the host segment is not forwarded again.

    Raises:
        InvalidRequestError: If the path has no usable host segment.
    """
    host, upstream_path = split_host(request.path)
    request.target_host = host
    request.upstream_path = upstream_path
    request.path = ROOT_PATH
    logger.debug("Routed %s to %s", request.original_uri, request.upstream_url)
