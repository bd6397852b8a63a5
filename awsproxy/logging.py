# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Logging setup with credential redaction.

The proxy holds a long-lived AWS secret key.  Anything registered with
``SecretFilter`` is scrubbed from every record before it is emitted, so
debug header dumps and exception messages cannot leak it.

Usage:
    # In the CLI entry point
    from awsproxy.logging import configure_logging
    configure_logging(level=logging.INFO)

    # In library modules
    import logging
    logger = logging.getLogger(__name__)
    logger.info("Proxying to %s", upstream_url)
"""

import logging
import re
from typing import ClassVar


REDACTED = "[REDACTED]"

#: mitmproxy internals that are noisy at INFO level.
_NOISY_LOGGERS = ("mitmproxy.proxy.server", "hpack", "passlib")


class SecretFilter(logging.Filter):
    """Logging filter that redacts registered secrets.

    Secrets are registered process-wide with ``register_secret()``, which
    the configuration loader calls for the secret key and session token.

    Example:
        SecretFilter.register_secret("wJalrXUtnFEMI/K7MDENG")
        handler.addFilter(SecretFilter())
        logger.info("key=%s", "wJalrXUtnFEMI/K7MDENG")
        # Output: "key=[REDACTED]"
    """

    _secrets: ClassVar[set[str]] = set()
    _pattern: ClassVar[re.Pattern[str] | None] = None

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact secrets in the message and its string arguments.

        Args:
            record: The log record to filter.

        Returns:
            Always True; records are rewritten, never dropped.
        """
        pattern = self._pattern
        if pattern is None:
            return True

        record.msg = pattern.sub(REDACTED, str(record.msg))
        if isinstance(record.args, tuple):
            record.args = tuple(
                pattern.sub(REDACTED, arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        elif isinstance(record.args, dict):
            record.args = {
                key: pattern.sub(REDACTED, value)
                if isinstance(value, str)
                else value
                for key, value in record.args.items()
            }
        return True

    @classmethod
    def register_secret(cls, secret: str | None) -> None:
        """Register a value to redact from all log output.

        Args:
            secret: Secret to redact. Empty or blank values are ignored.
        """
        if secret and secret.strip():
            cls._secrets.add(secret)
            cls._rebuild_pattern()

    @classmethod
    def clear_secrets(cls) -> None:
        """Forget all registered secrets. Primarily for testing."""
        cls._secrets.clear()
        cls._pattern = None

    @classmethod
    def _rebuild_pattern(cls) -> None:
        # Longest first so a secret containing another is fully redacted
        ordered = sorted(cls._secrets, key=len, reverse=True)
        cls._pattern = re.compile("|".join(re.escape(s) for s in ordered))


def configure_logging(
    level: int = logging.INFO,
    format_string: str | None = None,
    add_secret_filter: bool = True,
) -> None:
    """Configure the root logger for the proxy process.

    Args:
        level: Root log level (e.g., logging.INFO, logging.DEBUG).
        format_string: Custom format string. If None, uses default format.
        add_secret_filter: Whether to attach ``SecretFilter``.
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(format_string))

    if add_secret_filter:
        handler.addFilter(SecretFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for existing_handler in root_logger.handlers[:]:
        root_logger.removeHandler(existing_handler)

    root_logger.addHandler(handler)

    if level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
