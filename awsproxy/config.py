# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Proxy configuration.

Configuration is loaded once at startup from a YAML file.  The default
location follows the XDG Base Directory Specification:

    ``$XDG_CONFIG_HOME/awsproxy/awsproxy.yaml``
    (typically ``~/.config/awsproxy/awsproxy.yaml``)

``!env`` tags resolve values from environment variables, after ``.env``
files have been loaded.  When no file exists at the default location the
credentials are taken from ``AWS_ACCESS_KEY_ID``, ``AWS_SECRET_ACCESS_KEY``
and ``AWS_SESSION_TOKEN``.

Blank credentials do not prevent startup.  They are reported once as a
warning and every request is then rejected by ``Credentials.validate``.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from platformdirs import user_config_path

from awsproxy.dotenv_loader import load_dotenv_once
from awsproxy.errors import ConfigurationError
from awsproxy.logging import SecretFilter


logger = logging.getLogger(__name__)

#: Application name for XDG path resolution.
_APP_NAME = "awsproxy"

DEFAULT_REGION = "us-east-1"
DEFAULT_LISTEN_HOST = "127.0.0.1"
DEFAULT_LISTEN_PORT = 8080


def get_config_path() -> Path:
    """Return the default config file path.

    Returns:
        ``$XDG_CONFIG_HOME/awsproxy/awsproxy.yaml``.
    """
    return user_config_path(_APP_NAME) / "awsproxy.yaml"


def get_dotenv_path() -> Path:
    """Return the ``.env`` file path inside the XDG config directory."""
    return user_config_path(_APP_NAME) / ".env"


# ---------------------------------------------------------------------------
# YAML ``!env`` tag
# ---------------------------------------------------------------------------


class _EnvVar:
    """Placeholder for an unresolved ``!env VAR_NAME`` tag."""

    def __init__(self, var_name: str) -> None:
        self.var_name = var_name


def _env_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> _EnvVar:
    """Handle ``!env VAR_NAME`` in YAML."""
    value = loader.construct_scalar(node)  # type: ignore[arg-type]
    return _EnvVar(str(value))


def _make_loader() -> type[yaml.SafeLoader]:
    """Create a YAML loader that understands ``!env``."""

    class EnvLoader(yaml.SafeLoader):
        pass

    EnvLoader.add_constructor("!env", _env_constructor)
    return EnvLoader


def _raw_resolve(value: object) -> str | None:
    """Resolve an ``_EnvVar`` to its string value, or stringify literals.

    Returns None if the value is None or the env var is not set.
    """
    if isinstance(value, _EnvVar):
        return os.environ.get(value.var_name)
    if value is None:
        return None
    return str(value)


def _resolve(value: object, coerce: type[Any], default: Any = None) -> Any:
    """Resolve a YAML value, handling ``!env`` tags and type coercion.

    Args:
        value: Raw value from YAML (may be ``_EnvVar``, None, or a literal).
        coerce: Target type (``str`` or ``int``).
        default: Returned when the value is absent.

    Returns:
        The resolved, coerced value, or *default*.

    Raises:
        ConfigurationError: If the value is a boolean or cannot be
            coerced.
    """
    # YAML booleans are ints in Python
    if isinstance(value, bool):
        raise ConfigurationError(
            f"Cannot convert boolean {value!r} to {coerce.__name__}"
        )
    if not isinstance(value, _EnvVar) and isinstance(value, coerce):
        return value

    resolved = _raw_resolve(value)
    if resolved is None:
        return default

    try:
        return coerce(resolved)
    except ValueError as e:
        raise ConfigurationError(
            f"Cannot convert {resolved!r} to {coerce.__name__}"
        ) from e


def _section(raw: dict, name: str) -> dict:
    """Return a mapping section of the raw config, empty if absent."""
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"'{name}' must be a YAML mapping")
    return value


# ---------------------------------------------------------------------------
# Configuration values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Credentials:
    """AWS credentials used to sign every proxied request.

    Attributes:
        access_key_id: AWS access key ID.
        secret_key: AWS secret access key. Never shown in ``repr()``.
        session_token: Optional STS session token, sent as
            ``X-Amz-Security-Token``.
    """

    access_key_id: str
    secret_key: str = field(repr=False)
    session_token: str | None = field(default=None, repr=False)

    @property
    def is_complete(self) -> bool:
        """True if both the access key ID and secret key are non-blank."""
        return bool(self.access_key_id.strip() and self.secret_key.strip())

    def validate(self) -> None:
        """Fail fast when either credential value is blank.

        Raises:
            ConfigurationError: If the access key ID or secret key is blank.
        """
        if not self.access_key_id.strip():
            raise ConfigurationError("AWS access key ID is not configured")
        if not self.secret_key.strip():
            raise ConfigurationError("AWS secret key is not configured")


@dataclass(frozen=True)
class SigningSettings:
    """Overrides for values normally inferred from the target host.

    Attributes:
        region: Region to sign for. None means infer from the host.
        service: Service name to sign for. None means infer from the host.
            Needed for S3-compatible endpoints outside ``amazonaws.com``.
        default_region: Region used when the host carries none
            (``bucket.s3.amazonaws.com``).
    """

    region: str | None = None
    service: str | None = None
    default_region: str = DEFAULT_REGION


@dataclass(frozen=True)
class ProxyConfig:
    """Complete proxy configuration.

    Attributes:
        credentials: Credentials used for signing.
        mount_prefix: Base path of the proxy, stripped before the first
            path segment is read as the upstream host (e.g. ``/aws``).
        listen_host: Address mitmproxy binds to.
        listen_port: Port mitmproxy listens on.
        signing: Region/service overrides.
    """

    credentials: Credentials
    mount_prefix: str = ""
    listen_host: str = DEFAULT_LISTEN_HOST
    listen_port: int = DEFAULT_LISTEN_PORT
    signing: SigningSettings = field(default_factory=SigningSettings)

    def __post_init__(self) -> None:
        """Validate configuration.

        Raises:
            ConfigurationError: If the mount prefix or port is invalid.
        """
        if self.mount_prefix and not self.mount_prefix.startswith("/"):
            raise ConfigurationError(
                f"Mount prefix must start with '/': {self.mount_prefix!r}"
            )
        if not 0 < self.listen_port < 65536:
            raise ConfigurationError(
                f"Listen port must be in 1-65535: {self.listen_port}"
            )

    @classmethod
    def from_yaml(cls, config_path: Path | None = None) -> "ProxyConfig":
        """Load configuration from a YAML file.

        Args:
            config_path: Path to the YAML config file.  Defaults to
                ``~/.config/awsproxy/awsproxy.yaml`` (XDG); if that file
                does not exist, configuration comes from the environment.

        Returns:
            ProxyConfig instance.

        Raises:
            ConfigurationError: If an explicit file is missing or invalid.
        """
        load_dotenv_once(get_dotenv_path())

        if config_path is None:
            config_path = get_config_path()
            if not config_path.exists():
                logger.info(
                    "No config file at %s, reading credentials from "
                    "the environment",
                    config_path,
                )
                return cls._from_raw({})

        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")

        try:
            with open(config_path) as f:
                raw = yaml.load(f, Loader=_make_loader())
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in {config_path}: {e}"
            ) from e

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigurationError(
                f"Config file must be a YAML mapping: {config_path}"
            )

        return cls._from_raw(raw)

    @classmethod
    def _from_raw(cls, raw: dict) -> "ProxyConfig":
        """Build config from parsed (but unresolved) YAML dict."""
        creds_raw = _section(raw, "credentials")
        proxy_raw = _section(raw, "proxy")
        signing_raw = _section(raw, "signing")

        credentials = Credentials(
            access_key_id=_resolve(
                creds_raw.get("access_key_id", _EnvVar("AWS_ACCESS_KEY_ID")),
                str,
                default="",
            ),
            secret_key=_resolve(
                creds_raw.get(
                    "secret_access_key", _EnvVar("AWS_SECRET_ACCESS_KEY")
                ),
                str,
                default="",
            ),
            session_token=_resolve(
                creds_raw.get("session_token", _EnvVar("AWS_SESSION_TOKEN")),
                str,
            )
            or None,
        )
        SecretFilter.register_secret(credentials.secret_key)
        SecretFilter.register_secret(credentials.session_token)

        if not credentials.is_complete:
            logger.warning(
                "AWS credentials are incomplete; every request will be "
                "rejected until access key ID and secret key are set"
            )

        signing = SigningSettings(
            region=_resolve(signing_raw.get("region"), str),
            service=_resolve(signing_raw.get("service"), str),
            default_region=_resolve(
                signing_raw.get("default_region"), str, default=DEFAULT_REGION
            ),
        )

        mount_prefix = _resolve(proxy_raw.get("mount_prefix"), str, default="")

        config = cls(
            credentials=credentials,
            mount_prefix=mount_prefix.rstrip("/"),
            listen_host=_resolve(
                proxy_raw.get("listen_host"), str, default=DEFAULT_LISTEN_HOST
            ),
            listen_port=_resolve(
                proxy_raw.get("listen_port"), int, default=DEFAULT_LISTEN_PORT
            ),
            signing=signing,
        )
        logger.info(
            "Proxy config loaded: access_key_id=%s, mount_prefix=%r",
            credentials.access_key_id or "<unset>",
            config.mount_prefix,
        )
        return config
