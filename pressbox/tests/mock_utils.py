"""Centralized mock utilities for testing.

Reusable mock factories for the backend adapters, docker-py containers and
asyncio subprocesses, so tests configure behaviour instead of plumbing.

Usage:
    from pressbox.tests.mock_utils import (
        create_mock_local_backend,
        create_mock_docker_backend,
        create_mock_process,
    )

    local = create_mock_local_backend(php_version=None)  # PHP not installed
    docker = create_mock_docker_backend(running=True, sites=[{"name": "blog"}])
"""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock, Mock

from pressbox.services.docker_site_manager import DockerSiteManager
from pressbox.services.environment import Backend, LocalServer, PHPInfo
from pressbox.services.local_server_manager import LocalServerManager
from pressbox.services.site_data import SiteDataBundle

# =============================================================================
# Backend adapter mocks
# =============================================================================


def create_mock_local_backend(
    php_version: str | None = "8.2.10",
    sites: list[dict[str, Any]] | None = None,
    **extra_methods: Any,
) -> AsyncMock:
    """Create a mock LocalServerManager.

    Args:
        php_version: Detected PHP version, or None when PHP is not installed
        sites: Value returned by list_sites()
        **extra_methods: Method overrides as method_name=mock_or_return_value
    """
    backend = AsyncMock(spec=LocalServerManager)
    backend.detect.return_value = (
        PHPInfo(version=php_version, path="php", available=True) if php_version else PHPInfo()
    )
    backend.create_site.return_value = True
    backend.start_site.return_value = LocalServer(port=8080, url="http://localhost:8080")
    backend.stop_site.return_value = True
    backend.delete_site.return_value = True
    backend.list_sites.return_value = sites or []
    _apply_overrides(backend, extra_methods)
    return backend


def create_mock_docker_backend(
    running: bool = True,
    sites: list[dict[str, Any]] | None = None,
    **extra_methods: Any,
) -> AsyncMock:
    """Create a mock DockerSiteManager.

    Args:
        running: Whether is_running() reports a reachable daemon
        sites: Value returned by list_sites()
        **extra_methods: Method overrides as method_name=mock_or_return_value
    """
    backend = AsyncMock(spec=DockerSiteManager)
    backend.is_running.return_value = running
    backend.create_site.return_value = True
    backend.start_site.return_value = True
    backend.stop_site.return_value = True
    backend.cleanup_site.return_value = None
    backend.list_sites.return_value = sites or []
    _apply_overrides(backend, extra_methods)
    return backend


def _apply_overrides(mock: AsyncMock, overrides: dict[str, Any]) -> None:
    for method_name, value in overrides.items():
        if isinstance(value, Mock):
            setattr(mock, method_name, value)
        else:
            getattr(mock, method_name).return_value = value


def create_bundle(
    site_name: str = "blog",
    source: str = "local",
    config: dict[str, Any] | None = None,
    database_dump: bytes | None = None,
    files: bytes = b"archive",
) -> SiteDataBundle:
    return SiteDataBundle(
        site_name=site_name,
        source=Backend(source),
        config=config if config is not None else {"name": site_name, "php_version": "8.1"},
        files=files,
        database_dump=database_dump,
    )


# =============================================================================
# docker-py / subprocess mocks
# =============================================================================


def create_mock_container(
    name: str,
    site: str,
    status: str = "running",
    service: str = "wordpress",
) -> MagicMock:
    """Create a mock docker-py Container carrying PressBox labels."""
    container = MagicMock()
    container.name = name
    container.status = status
    container.labels = {
        "pressbox.managed": "true",
        "pressbox.site": site,
        "pressbox.service": service,
    }
    return container


def create_mock_process(
    returncode: int | None = 0,
    stdout: bytes = b"",
    stderr: bytes = b"",
) -> MagicMock:
    """Create a mock asyncio.subprocess.Process.

    ``communicate()`` returns (stdout, stderr); ``returncode`` is fixed.
    """
    process = MagicMock()
    process.returncode = returncode
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    process.wait = AsyncMock(return_value=returncode)
    process.terminate = MagicMock()
    process.kill = MagicMock()
    return process
