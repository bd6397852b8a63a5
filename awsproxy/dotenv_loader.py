# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Idempotent .env loading for credential environment variables.

Credentials are usually referenced from the config file with ``!env``
tags (or read straight from ``AWS_ACCESS_KEY_ID`` and friends when no
config file exists).  Before those are resolved, ``.env`` files are
loaded from two locations, in order:

1. ``~/.config/awsproxy/.env`` (XDG config directory)
2. ``.env`` in the current working directory

Variables already present in the environment are never overwritten, so
the XDG file wins over the working directory file and real environment
variables win over both.
"""

import logging
from pathlib import Path

from dotenv import load_dotenv


logger = logging.getLogger(__name__)

_dotenv_loaded = False


def load_dotenv_once(xdg_env: Path) -> None:
    """Load .env files once per process.

    Args:
        xdg_env: Path of the ``.env`` file in the XDG config directory.
    """
    global _dotenv_loaded
    if _dotenv_loaded:
        return

    if xdg_env.exists():
        load_dotenv(xdg_env)
        logger.debug("Loaded .env from %s", xdg_env)

    cwd_env = Path.cwd() / ".env"
    if cwd_env.exists():
        load_dotenv(cwd_env)
        logger.debug("Loaded .env from %s", cwd_env)

    _dotenv_loaded = True


def reset_dotenv_state() -> None:
    """Reset the dotenv loaded state. For testing only."""
    global _dotenv_loaded
    _dotenv_loaded = False
