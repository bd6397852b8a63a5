# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Per-request state threaded through the signing pipeline.

A ``ProxyRequest`` is created for each inbound call, mutated in place by
the pipeline stages and discarded once the upstream request has been
dispatched.  Each stage touches only its own fields:

- routing: ``path`` (reset), ``target_host``, ``upstream_path``
- header collection: ``signing_headers``
- signing: ``signature_headers``
- injection: ``outgoing_headers``
"""

from dataclasses import dataclass, field

from mitmproxy.http import Headers


#: Tracked path after routing consumed the host segment.
ROOT_PATH = "/"


@dataclass
class ProxyRequest:
    """Inbound request plus the routing and signing results.

    Attributes:
        method: HTTP method as received.
        original_uri: Inbound path and query, untouched.
        path: Tracked inbound path (without query).  Routing resets it to
            ``ROOT_PATH`` once the host segment has been consumed.
        query: Raw query string without the leading ``?``.
        headers: Inbound headers (case-insensitive multimap).
        body: Raw request body.
        target_host: Upstream host resolved by routing.
        upstream_path: Upstream path resolved by routing.
        signing_headers: AWS-prefixed headers collected for signing.
        signature_headers: Headers produced by the signer.
        outgoing_headers: Headers to send upstream.
    """

    method: str
    original_uri: str
    path: str
    query: str = ""
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""
    target_host: str = ""
    upstream_path: str = ""
    signing_headers: dict[str, str] = field(default_factory=dict)
    signature_headers: dict[str, str] = field(default_factory=dict)
    outgoing_headers: Headers = field(default_factory=Headers)

    @classmethod
    def from_uri(
        cls,
        method: str,
        uri: str,
        headers: Headers | None = None,
        body: bytes = b"",
    ) -> "ProxyRequest":
        """Build a request from a method and a path-with-query URI."""
        path, _, query = uri.partition("?")
        return cls(
            method=method,
            original_uri=uri,
            path=path,
            query=query,
            headers=headers if headers is not None else Headers(),
            body=body,
        )

    @property
    def upstream_url(self) -> str:
        """Absolute upstream URL: ``https://{host}{path}[?query]``."""
        url = f"https://{self.target_host}{self.forward_path()}"
        if self.query:
            url += f"?{self.query}"
        return url

    def forward_path(self) -> str:
        """Path the forwarding engine sends upstream.

        The engine appends whatever is left of the tracked path to the
        routed upstream path.  After routing the tracked path is
        ``ROOT_PATH`` and contributes nothing.
        """
        base = self.upstream_path or ROOT_PATH
        if self.path in ("", ROOT_PATH):
            return base
        return base.rstrip("/") + self.path
