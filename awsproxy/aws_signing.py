# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""AWS Signature Version 4 request signing.

Signs proxied requests with the proxy's own credentials.  The caller's
request carries no signature; everything the signature covers is
derived here:

- service and region from the upstream host name
- the signing timestamp from the proxy's clock
- the payload hash from the full request body

No boto3/botocore dependency; only stdlib hashing primitives are used.
"""

import hashlib
import hmac
import logging
import re
import urllib.parse
from dataclasses import dataclass, field
from datetime import UTC, datetime

from awsproxy.config import Credentials, SigningSettings
from awsproxy.errors import InvalidRequestError, RoutingError


logger = logging.getLogger(__name__)

ALGORITHM = "AWS4-HMAC-SHA256"
REQUEST_TYPE = "aws4_request"
AMZ_DATE_FORMAT = "%Y%m%dT%H%M%SZ"

#: Prefix marking headers the caller wants covered by the signature.
AWS_HEADER_PREFIX = "x-amz"

AUTHORIZATION_HEADER = "Authorization"
HOST_HEADER = "Host"
DATE_HEADER = "X-Amz-Date"
CONTENT_SHA256_HEADER = "X-Amz-Content-Sha256"
SECURITY_TOKEN_HEADER = "X-Amz-Security-Token"

_AWS_UNRESERVED = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_.~"
)

_AWS_DOMAIN_SUFFIXES = (".amazonaws.com.cn", ".amazonaws.com")

# "s3" label, optionally followed by a region/dualstack suffix
_S3_SERVICE_RE = re.compile(r"(?:^|\.)s3(?:[.-]|$)")

# s3.{region}, s3-{region}, s3.dualstack.{region}, s3-website-{region},
# s3-accesspoint.{region}, s3-fips.{region}
_S3_REGION_RE = re.compile(
    r"(?:^|\.)s3(?:-website|-accesspoint|-fips)?(?:[.-]dualstack)?"
    r"[.-](?P<region>[a-z0-9-]+)$"
)

# Legacy global S3 endpoint; signs as the default region
_S3_EXTERNAL_REGION = "external-1"


# ---------------------------------------------------------------------------
# Host name conventions
# ---------------------------------------------------------------------------


def _service_and_region(host: str) -> str | None:
    """Strip the AWS domain suffix from a host name.

    ``mybucket.s3.us-west-2.amazonaws.com`` -> ``mybucket.s3.us-west-2``.
    Returns None for hosts outside the AWS domains.
    """
    host = host.lower().rstrip(".")
    for suffix in _AWS_DOMAIN_SUFFIXES:
        if host.endswith(suffix):
            return host[: -len(suffix)]
    return None


def parse_service_name(host: str) -> str:
    """Derive the signing service name from an AWS host name.

    Args:
        host: Host name without port (e.g. ``mybucket.s3.amazonaws.com``).

    Returns:
        Service name, e.g. ``s3`` or ``dynamodb``.

    Raises:
        RoutingError: If the host is not an AWS endpoint.
    """
    prefix = _service_and_region(host)
    if not prefix:
        raise RoutingError(
            f"Cannot parse a service name from an unrecognized "
            f"endpoint ({host})"
        )
    if _S3_SERVICE_RE.search(prefix):
        return "s3"
    return prefix.split(".", 1)[0]


def parse_region(host: str, default_region: str) -> str:
    """Derive the signing region from an AWS host name.

    Args:
        host: Host name without port.
        default_region: Region for hosts that do not name one.

    Returns:
        Region, e.g. ``us-west-2``.
    """
    prefix = _service_and_region(host)
    if not prefix:
        return default_region

    if _S3_SERVICE_RE.search(prefix):
        m = _S3_REGION_RE.search(prefix)
        if m is None or m.group("region") == _S3_EXTERNAL_REGION:
            return default_region
        return m.group("region")

    labels = prefix.split(".")
    if len(labels) >= 2:
        return labels[1]
    return default_region


# ---------------------------------------------------------------------------
# URI encoding (AWS-specific RFC 3986 subset)
# ---------------------------------------------------------------------------


def _uri_encode(value: str, *, encode_slash: bool = True) -> str:
    """URI-encode a value using AWS's specific rules.

    Unreserved characters (A-Z, a-z, 0-9, -, _, ., ~) pass through,
    everything else becomes %XX with uppercase hex.  Multi-byte
    characters are encoded byte by byte from their UTF-8 form.

    Args:
        value: String to encode.
        encode_slash: If True, encode '/'; if False, preserve '/'.

    Returns:
        URI-encoded string.
    """
    result: list[str] = []
    for ch in value:
        if ch in _AWS_UNRESERVED:
            result.append(ch)
        elif ch == "/" and not encode_slash:
            result.append("/")
        else:
            result.extend(f"%{b:02X}" for b in ch.encode("utf-8"))
    return "".join(result)


# ---------------------------------------------------------------------------
# Canonical request construction
# ---------------------------------------------------------------------------


def canonical_uri(path: str, *, is_s3: bool = False) -> str:
    """Build canonical URI from request path.

    The path arrives as it appeared on the inbound request line, so it
    may already be percent-encoded.

    * **S3** (``is_s3=True``): decode, then encode once.  Double
      slashes and dot segments are kept.
    * **Other services**: decode, normalize dot segments and empty
      segments, then encode twice.

    Args:
        path: Request path, possibly already percent-encoded.
        is_s3: If True, use S3 canonicalization.

    Returns:
        URI-encoded canonical path.
    """
    if not path:
        return "/"

    path = path.split("?")[0]
    decoded = urllib.parse.unquote(path)

    if is_s3:
        return _uri_encode(decoded, encode_slash=False)

    normalized: list[str] = []
    for part in decoded.split("/"):
        if part == "..":
            if normalized:
                normalized.pop()
        elif part not in (".", ""):
            normalized.append(part)
    normalized_path = "/" + "/".join(normalized)
    if decoded.endswith("/") and normalized:
        normalized_path += "/"

    single = _uri_encode(normalized_path, encode_slash=False)
    return _uri_encode(single, encode_slash=False)


def canonical_query_string(query: str) -> str:
    """Build canonical query string.

    Args:
        query: Raw query string (without leading ?).

    Returns:
        Parameters URI-encoded and sorted by name, then value.
    """
    if not query:
        return ""

    params = urllib.parse.parse_qsl(query, keep_blank_values=True)
    encoded = sorted((_uri_encode(k), _uri_encode(v)) for k, v in params)
    return "&".join(f"{k}={v}" for k, v in encoded)


def canonical_headers_string(
    headers: dict[str, str], signed_headers_list: list[str]
) -> str:
    """Build canonical headers string.

    Args:
        headers: Request headers (name -> value).
        signed_headers_list: Signed header names (lowercase).

    Returns:
        One ``name:value`` line per signed header, each newline-terminated.
    """
    lower_headers = {name.lower(): value for name, value in headers.items()}

    lines: list[str] = []
    for name in sorted(signed_headers_list):
        value = lower_headers.get(name, "")
        trimmed = " ".join(value.split())
        lines.append(f"{name}:{trimmed}\n")
    return "".join(lines)


def build_canonical_request(
    method: str,
    path: str,
    query: str,
    headers: dict[str, str],
    signed_headers: str,
    payload_hash: str,
    *,
    is_s3: bool = False,
) -> str:
    """Build the canonical request string.

    Args:
        method: HTTP method.
        path: Request path.
        query: Query string (without leading ?).
        headers: Headers to sign.
        signed_headers: Semicolon-separated signed header names.
        payload_hash: Hex SHA-256 of the request body.
        is_s3: If True, use S3 path canonicalization.

    Returns:
        Canonical request string.
    """
    return "\n".join(
        [
            method.upper(),
            canonical_uri(path, is_s3=is_s3),
            canonical_query_string(query),
            canonical_headers_string(headers, signed_headers.split(";")),
            signed_headers,
            payload_hash,
        ]
    )


# ---------------------------------------------------------------------------
# SigV4 primitives
# ---------------------------------------------------------------------------


def _hmac_sha256(key: bytes, msg: str | bytes) -> bytes:
    """HMAC-SHA256 helper."""
    if isinstance(msg, str):
        msg = msg.encode("utf-8")
    return hmac.new(key, msg, hashlib.sha256).digest()


def payload_hash(body: bytes) -> str:
    """Hex SHA-256 digest of the full request body."""
    return hashlib.sha256(body).hexdigest()


def credential_scope(date: str, region: str, service: str) -> str:
    """Build ``date/region/service/aws4_request``."""
    return f"{date}/{region}/{service}/{REQUEST_TYPE}"


def derive_signing_key(
    secret_key: str, date: str, region: str, service: str
) -> bytes:
    """Derive the SigV4 signing key.

    Args:
        secret_key: AWS secret access key.
        date: Date string (YYYYMMDD).
        region: AWS region.
        service: AWS service name.

    Returns:
        Derived signing key bytes.
    """
    k_date = _hmac_sha256(("AWS4" + secret_key).encode("utf-8"), date)
    k_region = _hmac_sha256(k_date, region)
    k_service = _hmac_sha256(k_region, service)
    return _hmac_sha256(k_service, REQUEST_TYPE)


def build_string_to_sign(
    timestamp: str, scope: str, canonical_request: str
) -> str:
    """Build the SigV4 string to sign.

    Args:
        timestamp: ISO8601 basic timestamp (x-amz-date format).
        scope: Credential scope.
        canonical_request: The canonical request string.

    Returns:
        String to sign.
    """
    return "\n".join(
        [
            ALGORITHM,
            timestamp,
            scope,
            hashlib.sha256(canonical_request.encode("utf-8")).hexdigest(),
        ]
    )


def sign_string(signing_key: bytes, string_to_sign: str) -> str:
    """Hex-encoded HMAC-SHA256 of the string to sign."""
    return hmac.new(
        signing_key, string_to_sign.encode("utf-8"), hashlib.sha256
    ).hexdigest()


# ---------------------------------------------------------------------------
# Request signing
# ---------------------------------------------------------------------------


@dataclass
class SigningContext:
    """Intermediate values of one signing operation.

    Never reused across requests.
    """

    service: str
    region: str
    timestamp: str
    scope: str = ""
    payload_hash: str = ""
    signed_headers: str = ""
    canonical_request: str = ""
    string_to_sign: str = ""
    signing_key: bytes = field(default=b"", repr=False)
    signature: str = ""

    @property
    def date(self) -> str:
        """Date part of the timestamp (YYYYMMDD)."""
        return self.timestamp[:8]


@dataclass
class SigningResult:
    """Headers produced by the signer and the context that made them."""

    headers: dict[str, str]
    context: SigningContext


def _signer_header_names(credentials: Credentials) -> set[str]:
    names = {HOST_HEADER, DATE_HEADER, CONTENT_SHA256_HEADER}
    if credentials.session_token:
        names.add(SECURITY_TOKEN_HEADER)
    return {name.lower() for name in names}


def sign_request(
    *,
    method: str,
    url: str,
    headers: dict[str, str],
    body: bytes,
    credentials: Credentials,
    settings: SigningSettings | None = None,
    now: datetime | None = None,
) -> SigningResult:
    """Sign a request with AWS Signature Version 4.

    Only ``host`` and headers starting with ``x-amz`` are signed.
    Caller-supplied values for the headers the signer produces itself
    (``Host``, ``X-Amz-Date``, ``X-Amz-Content-Sha256`` and, with a
    session token, ``X-Amz-Security-Token``) are replaced.

    Args:
        method: HTTP method.
        url: Absolute upstream URL.
        headers: Working header set (AWS-prefixed headers to sign).
        body: Full request body.
        credentials: Validated signing credentials.
        settings: Region/service overrides.
        now: Signing time.  Defaults to the current UTC time; callers
            never supply a request-derived time here.

    Returns:
        SigningResult with ``Authorization`` and the other signer headers.

    Raises:
        RoutingError: If the URL is malformed or names no AWS service.
        InvalidRequestError: If the path, query or a signed header value
            holds bytes that are not valid UTF-8.
    """
    if settings is None:
        settings = SigningSettings()

    try:
        parts = urllib.parse.urlsplit(url)
        hostname = parts.hostname
        port = parts.port
    except ValueError as e:
        raise RoutingError(f"Invalid upstream URL '{url}': {e}") from e
    if not hostname:
        raise RoutingError(f"Upstream URL '{url}' has no host")

    service = settings.service or parse_service_name(hostname)
    region = settings.region or parse_region(hostname, settings.default_region)
    if now is None:
        now = datetime.now(UTC)
    ctx = SigningContext(
        service=service,
        region=region,
        timestamp=now.astimezone(UTC).strftime(AMZ_DATE_FORMAT),
    )

    produced_names = _signer_header_names(credentials)
    to_sign = {
        name: value
        for name, value in headers.items()
        if name.lower().startswith(AWS_HEADER_PREFIX)
        and name.lower() not in produced_names
    }

    ctx.payload_hash = payload_hash(body)
    produced: dict[str, str] = {
        HOST_HEADER: hostname if port is None else f"{hostname}:{port}",
        DATE_HEADER: ctx.timestamp,
        CONTENT_SHA256_HEADER: ctx.payload_hash,
    }
    if credentials.session_token:
        produced[SECURITY_TOKEN_HEADER] = credentials.session_token
    to_sign.update(produced)

    ctx.signed_headers = ";".join(sorted(name.lower() for name in to_sign))
    ctx.scope = credential_scope(ctx.date, region, service)
    try:
        ctx.canonical_request = build_canonical_request(
            method,
            parts.path,
            parts.query,
            to_sign,
            ctx.signed_headers,
            ctx.payload_hash,
            is_s3=service == "s3",
        )
        ctx.string_to_sign = build_string_to_sign(
            ctx.timestamp, ctx.scope, ctx.canonical_request
        )
    except UnicodeEncodeError as e:
        raise InvalidRequestError(
            f"Request path, query or headers are not valid UTF-8: {e.reason}"
        ) from e
    ctx.signing_key = derive_signing_key(
        credentials.secret_key, ctx.date, region, service
    )
    ctx.signature = sign_string(ctx.signing_key, ctx.string_to_sign)

    produced[AUTHORIZATION_HEADER] = (
        f"{ALGORITHM} "
        f"Credential={credentials.access_key_id}/{ctx.scope}, "
        f"SignedHeaders={ctx.signed_headers}, "
        f"Signature={ctx.signature}"
    )
    logger.debug(
        "Signed %s %s (service=%s, region=%s, signed_headers=%s)",
        method,
        url,
        service,
        region,
        ctx.signed_headers,
    )
    return SigningResult(headers=produced, context=ctx)
