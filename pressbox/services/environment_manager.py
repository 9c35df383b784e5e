"""Unified environment manager.

Single entry point for site operations regardless of backend. Owns the
current preferred backend and composes the capability probe, the lifecycle
dispatcher and the migration coordinator around one Local and one Docker
adapter.

Usage:
    manager = EnvironmentManager(local, docker, probe_timeout=settings.probe_timeout)
    await manager.initialize()
    await manager.create_site(SiteDescriptor(name="blog"))
    await manager.start_site("blog")
"""

from __future__ import annotations

from typing import Any

from pressbox.core.exceptions import EnvironmentUnavailableError
from pressbox.core.logging import get_logger
from pressbox.core.protocols import DockerBackendProtocol, LocalBackendProtocol
from pressbox.services.backend_selection import select_preferred
from pressbox.services.capability_probe import CapabilityProbe
from pressbox.services.environment import (
    Backend,
    CapabilitySnapshot,
    SiteDescriptor,
    SiteRecord,
)
from pressbox.services.lifecycle_dispatcher import LifecycleDispatcher
from pressbox.services.migration_coordinator import MigrationCoordinator
from pressbox.services.site_locator import SiteLocator

logger = get_logger(__name__)


class EnvironmentManager:
    """Facade over capability detection, site lifecycle and migration.

    ``initialize()`` must be awaited before any other operation.
    """

    def __init__(
        self,
        local: LocalBackendProtocol,
        docker: DockerBackendProtocol,
        *,
        probe_timeout: float = 10.0,
        default_backend: Backend = Backend.LOCAL,
    ) -> None:
        self._local = local
        self._docker = docker
        self._current_backend = default_backend
        self._probe = CapabilityProbe(local, docker, timeout=probe_timeout)
        self._dispatcher = LifecycleDispatcher(
            local,
            docker,
            SiteLocator(docker),
            current_backend=lambda: self._current_backend,
        )
        hooks: dict[Backend, Any] = {
            backend: adapter
            for backend, adapter in ((Backend.LOCAL, local), (Backend.DOCKER, docker))
            if hasattr(adapter, "export_site_data") and hasattr(adapter, "import_site_data")
        }
        self._migration = MigrationCoordinator(self._dispatcher, hooks)
        self._initialized = False

    @property
    def current_backend(self) -> Backend:
        return self._current_backend

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> CapabilitySnapshot:
        """Probe capabilities and select the preferred backend."""
        snapshot = await self._probe.probe()
        self._current_backend = select_preferred(snapshot)
        self._initialized = True
        logger.info(
            f"Environment manager initialized with {self._current_backend} environment",
            extra={
                "local_available": snapshot.local.available,
                "docker_available": snapshot.docker.available,
            },
        )
        return snapshot

    async def get_capabilities(self) -> CapabilitySnapshot:
        """Return a freshly probed capability snapshot."""
        return await self._probe.probe()

    async def create_site(self, descriptor: SiteDescriptor) -> bool:
        return await self._dispatcher.create(descriptor)

    async def start_site(self, name: str, backend: Backend | None = None) -> bool:
        return await self._dispatcher.start(name, backend)

    async def stop_site(self, name: str, backend: Backend | None = None) -> bool:
        return await self._dispatcher.stop(name, backend)

    async def delete_site(self, name: str, backend: Backend | None = None) -> bool:
        return await self._dispatcher.delete(name, backend)

    async def list_sites(self) -> list[SiteRecord]:
        return await self._dispatcher.list_all()

    async def switch_environment(self, backend: Backend) -> bool:
        """Make ``backend`` the default for new sites.

        Raises:
            EnvironmentUnavailableError: If ``backend`` is not available now
        """
        snapshot = await self._probe.probe()
        if not snapshot[backend].available:
            raise EnvironmentUnavailableError(backend.value)

        previous = self._current_backend
        self._current_backend = backend
        logger.info(
            f"Switched to {backend} environment",
            extra={"previous": previous.value, "current": backend.value},
        )
        return True

    async def migrate_site(self, name: str, source: Backend, target: Backend) -> bool:
        return await self._migration.migrate(name, source, target)

    async def shutdown(self) -> None:
        """Ask both adapters to release their resources."""
        for adapter in (self._local, self._docker):
            close = getattr(adapter, "close", None)
            if close is not None:
                await close()
        self._initialized = False
        logger.info("Environment manager shut down")
