"""Pytest configuration and shared fixtures.

This module provides shared test fixtures for all PressBox tests:
- settings: Settings rooted in a temporary PressBox home
- local_backend / docker_backend: AsyncMock adapters satisfying the backend protocols
- environment_manager: EnvironmentManager wired to the mock adapters

No test touches the real Docker daemon, PHP binary or network; subprocesses
are patched where adapters would spawn them.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from pressbox.core.config import Settings, get_settings
from pressbox.services.environment_manager import EnvironmentManager
from pressbox.tests.mock_utils import create_mock_docker_backend, create_mock_local_backend


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Give slow-marked tests a longer timeout than the pyproject default."""
    cli_timeout = config.getoption("timeout", default=None)
    if cli_timeout == 0:
        return

    for item in items:
        if item.get_closest_marker("timeout"):
            continue
        if item.get_closest_marker("slow"):
            item.add_marker(pytest.mark.timeout(30))


@pytest.fixture(autouse=True)
def clean_settings_cache(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Clear PRESSBOX_* variables and the settings cache around every test."""
    for var in list(os.environ):
        if var.startswith("PRESSBOX_"):
            monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def pressbox_home(tmp_path: Path) -> Path:
    home = tmp_path / "PressBox"
    home.mkdir()
    return home


@pytest.fixture
def settings(pressbox_home: Path, tmp_path: Path) -> Settings:
    """Settings isolated to a temporary home with fast, offline defaults."""
    return Settings(
        _env_file=None,
        home=str(pressbox_home),
        log_file_path=str(tmp_path / "logs" / "pressbox.log"),
        php_server_startup_delay=0.0,
        wordpress_download=False,
        subprocess_timeout=5.0,
        probe_timeout=1.0,
    )


@pytest.fixture
def local_backend():
    return create_mock_local_backend()


@pytest.fixture
def docker_backend():
    return create_mock_docker_backend()


@pytest.fixture
def environment_manager(local_backend, docker_backend) -> EnvironmentManager:
    return EnvironmentManager(local_backend, docker_backend, probe_timeout=1.0)
