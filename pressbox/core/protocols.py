"""Protocol definitions for backend adapter interfaces.

This module defines Protocol classes for structural subtyping. The orchestrator
depends only on these shapes, so any object implementing the methods can serve
as a backend: the bundled adapters, or test doubles.

Protocol Definitions:
    - LocalBackendProtocol: Native PHP built-in server backend
    - DockerBackendProtocol: Docker Compose backend
    - SiteDataHooksProtocol: Per-backend export/import used by site migration

See Also:
    - pressbox/services/local_server_manager.py - Implements LocalBackendProtocol
    - pressbox/services/docker_site_manager.py - Implements DockerBackendProtocol
    - pressbox/services/site_data.py - SiteDataBundle exchanged by SiteDataHooksProtocol
      (both managers implement the hooks)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from pressbox.services.environment import LocalServer, PHPInfo, SiteDescriptor
    from pressbox.services.site_data import SiteDataBundle


@runtime_checkable
class LocalBackendProtocol(Protocol):
    """Protocol for the local PHP built-in server backend."""

    async def detect(self) -> PHPInfo:
        """Detect a usable PHP interpreter on the host."""
        ...

    async def create_site(self, descriptor: SiteDescriptor) -> bool: ...

    async def start_site(self, name: str) -> LocalServer | None:
        """Start the site's server and return its handle, or None if it did not start."""
        ...

    async def stop_site(self, name: str) -> bool: ...

    async def delete_site(self, name: str) -> bool: ...

    async def list_sites(self) -> list[dict[str, Any]]: ...


@runtime_checkable
class DockerBackendProtocol(Protocol):
    """Protocol for the Docker Compose backend."""

    async def is_running(self) -> bool:
        """Check whether the Docker daemon answers a liveness ping."""
        ...

    async def create_site(self, descriptor: SiteDescriptor) -> bool: ...

    async def start_site(self, name: str) -> bool: ...

    async def stop_site(self, name: str) -> bool: ...

    async def cleanup_site(self, name: str) -> None:
        """Tear down the site's containers, volumes and generated files."""
        ...

    async def list_sites(self) -> list[dict[str, Any]]: ...


@runtime_checkable
class SiteDataHooksProtocol(Protocol):
    """Protocol for backend-specific site export/import."""

    async def export_site_data(self, name: str) -> SiteDataBundle:
        """Serialize a site's files, database and config."""
        ...

    async def import_site_data(self, name: str, bundle: SiteDataBundle) -> None:
        """Restore a previously exported bundle into an existing site."""
        ...
