# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures."""

from collections.abc import Callable, Iterator
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from awsproxy.config import Credentials, ProxyConfig
from awsproxy.dotenv_loader import reset_dotenv_state
from awsproxy.logging import SecretFilter
from tests.vectors import ACCESS_KEY_ID, EXAMPLE_TIME, SECRET_KEY


@pytest.fixture(autouse=True)
def isolated_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Iterator[Path]:
    """Keep tests away from the real XDG config and AWS env vars.

    Returns:
        Directory standing in for ``~/.config/awsproxy``.
    """
    config_dir = tmp_path / "xdg-config"
    config_dir.mkdir()
    for var in (
        "AWS_ACCESS_KEY_ID",
        "AWS_SECRET_ACCESS_KEY",
        "AWS_SESSION_TOKEN",
    ):
        # setenv first so teardown also removes values loaded from .env
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)
    monkeypatch.chdir(tmp_path)
    reset_dotenv_state()
    SecretFilter.clear_secrets()
    with (
        patch(
            "awsproxy.config.get_config_path",
            return_value=config_dir / "awsproxy.yaml",
        ),
        patch(
            "awsproxy.config.get_dotenv_path",
            return_value=config_dir / ".env",
        ),
    ):
        yield config_dir
    SecretFilter.clear_secrets()
    reset_dotenv_state()


@pytest.fixture
def credentials() -> Credentials:
    """Credentials from the AWS documentation examples."""
    return Credentials(access_key_id=ACCESS_KEY_ID, secret_key=SECRET_KEY)


@pytest.fixture
def config(credentials: Credentials) -> ProxyConfig:
    """Proxy config with example credentials and no mount prefix."""
    return ProxyConfig(credentials=credentials)


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    """Clock pinned to the AWS documentation example time."""
    return lambda: EXAMPLE_TIME
