"""Shared pytest configuration and fixtures."""

from collections.abc import Callable, Generator
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest
from factories import FIXED_NOW

from wskstatus.config import Settings, get_settings


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture(autouse=True)
def _no_dotenv() -> Generator[None]:
    """Block .env loading so tests never pick up a developer's real credentials.

    Sets Settings.model_config['env_file'] = None before each test.
    """
    get_settings.cache_clear()
    original = Settings.model_config.get("env_file")
    Settings.model_config["env_file"] = None

    try:
        yield
    finally:
        Settings.model_config["env_file"] = original
        get_settings.cache_clear()


@pytest.fixture
def mock_settings(tmp_path: Path) -> Generator[Settings]:
    """Provide deterministic settings with no .wskprops on disk.

    Patches get_settings at every import site so cached references are overridden.
    """
    fake_settings = Settings(
        apihost="",
        namespace="",
        auth="",
        wskprops_path=str(tmp_path / "missing.wskprops"),
        request_timeout_seconds=5.0,
        refresh_interval_seconds=3600,
        refresh_quiet_seconds=10,
        web_window_buckets=80,
    )
    with (
        patch("wskstatus.config.get_settings", return_value=fake_settings),
        patch("wskstatus.api.main.get_settings", return_value=fake_settings),
        patch("wskstatus.cli.get_settings", return_value=fake_settings),
    ):
        yield fake_settings
