# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""mitmproxy addon that routes and signs requests for AWS.

mitmproxy runs in reverse-proxy mode and does all the network work.
For every inbound request the addon builds a ``ProxyRequest``, runs the
signing pipeline and rewrites the flow to point at the upstream AWS
endpoint with the signed headers.  Requests the pipeline rejects are
answered directly with a JSON error and never leave the proxy.

Usage:
    mitmdump --mode reverse:https://s3.amazonaws.com \\
        -s awsproxy/addon.py --set awsproxy_config=awsproxy.yaml
"""

import json
import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Optional

from mitmproxy import ctx, exceptions, http

from awsproxy.config import ProxyConfig
from awsproxy.errors import (
    BodyReadError,
    ConfigurationError,
    ProxyError,
    RoutingError,
)
from awsproxy.pipeline import SigningPipeline
from awsproxy.request import ProxyRequest


logger = logging.getLogger(__name__)

CONFIG_OPTION = "awsproxy_config"


def build_proxy_request(flow: http.HTTPFlow) -> ProxyRequest:
    """Build a ``ProxyRequest`` from a mitmproxy flow.

    Args:
        flow: The inbound HTTP flow.

    Returns:
        ProxyRequest with method, path, query, headers and body.

    Raises:
        BodyReadError: If the body was streamed and is not buffered.
    """
    body = flow.request.raw_content
    if body is None:
        raise BodyReadError(
            "Request body was streamed and cannot be buffered for signing"
        )
    return ProxyRequest.from_uri(
        method=flow.request.method,
        uri=flow.request.path,
        headers=flow.request.headers.copy(),
        body=body,
    )


def error_response(error: ProxyError) -> http.Response:
    """JSON response describing a rejected request."""
    return http.Response.make(
        error.status_code,
        json.dumps({"error": error.error_code, "message": str(error)}),
        {"Content-Type": "application/json"},
    )


class AwsSigningProxy:
    """mitmproxy addon that signs requests with AWS SigV4."""

    def __init__(
        self,
        config: ProxyConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the addon.

        Args:
            config: Proxy configuration.  If None, it is loaded from the
                ``awsproxy_config`` option when mitmproxy configures the
                addon.
            clock: Signing clock override, for tests.
        """
        self._clock = clock
        self.pipeline: SigningPipeline | None = None
        if config is not None:
            self.pipeline = SigningPipeline(config, clock)

    def load(self, loader: object) -> None:
        """Register addon options."""
        loader.add_option(  # type: ignore[attr-defined]
            name=CONFIG_OPTION,
            typespec=Optional[str],  # noqa: UP045
            default=None,
            help="Path to awsproxy.yaml (default: ~/.config/awsproxy/).",
        )

    def configure(self, updated: set[str]) -> None:
        """Load configuration when the config option changes.

        Raises:
            OptionsError: If the configuration cannot be loaded.
        """
        if CONFIG_OPTION not in updated:
            return
        path = getattr(ctx.options, CONFIG_OPTION)
        if path is None and self.pipeline is not None:
            return

        try:
            config = ProxyConfig.from_yaml(Path(path) if path else None)
        except ConfigurationError as e:
            raise exceptions.OptionsError(str(e)) from e
        self.pipeline = SigningPipeline(config, self._clock)

    def request(self, flow: http.HTTPFlow) -> None:
        """Route and sign the request, or answer it with an error."""
        if flow.response is not None:
            return

        method = flow.request.method
        path = flow.request.path
        try:
            if self.pipeline is None:
                raise ConfigurationError("Proxy configuration is not loaded")
            proxy_request = self.pipeline.process(build_proxy_request(flow))
        except ConfigurationError as e:
            logger.error("Rejected %s %s: %s", method, path, e)
            flow.response = error_response(e)
            return
        except ProxyError as e:
            logger.warning("Rejected %s %s: %s", method, path, e)
            flow.response = error_response(e)
            return

        try:
            flow.request.url = proxy_request.upstream_url
        except ValueError as e:
            error = RoutingError(
                f"Cannot forward to {proxy_request.upstream_url!r}: {e}"
            )
            logger.warning("Rejected %s %s: %s", method, path, error)
            flow.response = error_response(error)
            return
        flow.request.headers = proxy_request.outgoing_headers
        flow.metadata["awsproxy_signed"] = True
        logger.info("Proxying %s %s -> %s", method, path, flow.request.url)

    def response(self, flow: http.HTTPFlow) -> None:
        """Log the upstream status of signed requests."""
        if not flow.metadata.get("awsproxy_signed"):
            return
        code = flow.response.status_code if flow.response else "?"
        logger.info(
            "%s %s -> %s", flow.request.method, flow.request.pretty_url, code
        )

    def error(self, flow: http.HTTPFlow) -> None:
        """Log upstream connection errors (e.g. DNS resolution failure)."""
        if not flow.metadata.get("awsproxy_signed"):
            return
        msg = flow.error.msg if flow.error else "unknown error"
        logger.warning(
            "ERROR %s %s -> %s",
            flow.request.method,
            flow.request.pretty_url,
            msg,
        )


addons = [AwsSigningProxy()]
