# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Ordered request preparation stages.

The pipeline turns an inbound ``ProxyRequest`` into a routed and signed
request ready for forwarding.  Stages run in a fixed order:

1. ``strip_mount_prefix``: drop the proxy's base path
2. ``route``: resolve upstream host and path
3. ``validate_credentials``: fail fast on blank credentials
4. ``collect_headers``: copy AWS-prefixed inbound headers
5. ``sign``: compute the SigV4 signature headers
6. ``inject_headers``: merge signature headers into the outgoing set

Any ``ProxyError`` raised by a stage aborts the request; later stages
do not run.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from mitmproxy.http import Headers

from awsproxy.aws_signing import sign_request
from awsproxy.config import ProxyConfig
from awsproxy.headers import (
    collect_aws_headers,
    log_headers,
    merge_signed_headers,
)
from awsproxy.request import ProxyRequest
from awsproxy.routing import route, strip_mount_prefix


logger = logging.getLogger(__name__)

Stage = Callable[[ProxyRequest], None]


class SigningPipeline:
    """Routes and signs requests with a fixed configuration.

    Holds no per-request state, so one instance serves concurrent
    requests.
    """

    def __init__(
        self,
        config: ProxyConfig,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config: Immutable proxy configuration.
            clock: Returns the signing time.  None means the current UTC
                time; tests substitute a fixed clock.
        """
        self.config = config
        self._clock = clock
        self.stages: tuple[tuple[str, Stage], ...] = (
            ("strip_mount_prefix", self._strip_mount_prefix),
            ("route", route),
            ("validate_credentials", self._validate_credentials),
            ("collect_headers", self._collect_headers),
            ("sign", self._sign),
            ("inject_headers", self._inject_headers),
        )

    def process(self, request: ProxyRequest) -> ProxyRequest:
        """Run every stage on the request, in order.

        Args:
            request: Freshly built inbound request.

        Returns:
            The same request, routed and signed.

        Raises:
            ProxyError: From the first failing stage.
        """
        for name, stage in self.stages:
            logger.debug("Stage %s: %s", name, request.original_uri)
            stage(request)
        log_headers(request.outgoing_headers)
        return request

    def _strip_mount_prefix(self, request: ProxyRequest) -> None:
        request.path = strip_mount_prefix(
            request.path, self.config.mount_prefix
        )

    def _validate_credentials(self, _request: ProxyRequest) -> None:
        self.config.credentials.validate()

    def _collect_headers(self, request: ProxyRequest) -> None:
        request.signing_headers = collect_aws_headers(request.headers)

    def _sign(self, request: ProxyRequest) -> None:
        result = sign_request(
            method=request.method,
            url=request.upstream_url,
            headers=request.signing_headers,
            body=request.body,
            credentials=self.config.credentials,
            settings=self.config.signing,
            now=self._clock() if self._clock is not None else None,
        )
        request.signature_headers = result.headers

    def _inject_headers(self, request: ProxyRequest) -> None:
        outgoing = Headers(request.headers.fields)
        # Repeated AWS headers collapse to the value that was signed
        merge_signed_headers(outgoing, request.signing_headers)
        merge_signed_headers(outgoing, request.signature_headers)
        request.outgoing_headers = outgoing
