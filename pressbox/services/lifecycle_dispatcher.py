"""Site lifecycle dispatch across backends.

Routes create/start/stop/delete/list to the backend that owns a site:

- create targets the descriptor's backend, else the current preferred one,
  and retries once on the other backend when the first attempt raises
- start/stop/delete resolve the owner through SiteLocator when no backend is
  given; start/stop errors propagate, delete reports failure as False
- list merges both inventories (Local first), isolating per-backend failures
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pressbox.core.exceptions import SiteCreationError
from pressbox.core.logging import get_logger, sanitize_error, site_context
from pressbox.core.protocols import DockerBackendProtocol, LocalBackendProtocol
from pressbox.services.environment import Backend, SiteDescriptor, SiteRecord
from pressbox.services.site_locator import SiteLocator

logger = get_logger(__name__)


class LifecycleDispatcher:
    """Dispatches site operations through a backend-keyed adapter table."""

    def __init__(
        self,
        local: LocalBackendProtocol,
        docker: DockerBackendProtocol,
        locator: SiteLocator,
        current_backend: Callable[[], Backend],
    ) -> None:
        self._local = local
        self._docker = docker
        self._locator = locator
        self._current_backend = current_backend
        self._adapters: dict[Backend, Any] = {
            Backend.LOCAL: local,
            Backend.DOCKER: docker,
        }

    async def _resolve(self, name: str, backend: Backend | None) -> Backend:
        if backend is not None:
            return backend
        return await self._locator.locate(name)

    async def _create_on(self, backend: Backend, descriptor: SiteDescriptor) -> bool:
        return bool(await self._adapters[backend].create_site(descriptor.bound_to(backend)))

    async def create(self, descriptor: SiteDescriptor, *, allow_fallback: bool = True) -> bool:
        """Create a site on its target backend, falling back to the other one.

        The fallback is attempted whenever the primary raises, regardless of
        whether the other backend is known to be available.

        Raises:
            SiteCreationError: If both the primary and the fallback attempt fail
        """
        target = descriptor.backend or self._current_backend()
        with site_context(descriptor.name):
            try:
                return await self._create_on(target, descriptor)
            except Exception as primary_error:
                if not allow_fallback:
                    raise
                fallback = target.other
                logger.warning(
                    f"Failed to create site in {target} environment, trying {fallback}: "
                    f"{sanitize_error(primary_error)}",
                    extra={"primary": target.value, "fallback": fallback.value},
                )
                try:
                    created = await self._create_on(fallback, descriptor)
                except Exception as fallback_error:
                    logger.error(
                        f"Failed to create site in {fallback} environment: "
                        f"{sanitize_error(fallback_error)}",
                        extra={"primary": target.value, "fallback": fallback.value},
                    )
                    raise SiteCreationError(
                        descriptor.name,
                        primary=target.value,
                        primary_error=primary_error,
                        fallback=fallback.value,
                        fallback_error=fallback_error,
                    ) from fallback_error

                logger.info(f"Created site in fallback {fallback} environment")
                return created

    async def start(self, name: str, backend: Backend | None = None) -> bool:
        target = await self._resolve(name, backend)
        with site_context(name):
            if target is Backend.LOCAL:
                server = await self._local.start_site(name)
                return server is not None
            return bool(await self._docker.start_site(name))

    async def stop(self, name: str, backend: Backend | None = None) -> bool:
        target = await self._resolve(name, backend)
        with site_context(name):
            return bool(await self._adapters[target].stop_site(name))

    async def delete(self, name: str, backend: Backend | None = None) -> bool:
        """Delete a site. Returns False instead of raising on any failure."""
        with site_context(name):
            try:
                target = await self._resolve(name, backend)
                if target is Backend.DOCKER:
                    await self._docker.cleanup_site(name)
                    return True
                return bool(await self._local.delete_site(name))
            except Exception as e:
                logger.error(
                    f"Failed to delete site {name}: {sanitize_error(e)}",
                    extra={"error_type": type(e).__name__},
                )
                return False

    async def list_all(self) -> list[SiteRecord]:
        """List sites from both backends, Local entries first."""
        records: list[SiteRecord] = []
        for backend in (Backend.LOCAL, Backend.DOCKER):
            try:
                sites = await self._adapters[backend].list_sites()
                batch = [
                    SiteRecord(
                        name=site["name"],
                        environment=backend,
                        status=site.get("status", "stopped"),
                        url=site.get("url", ""),
                        config=site.get("config") or {},
                    )
                    for site in sites
                ]
            except Exception as e:
                logger.error(
                    f"Error listing {backend} sites: {sanitize_error(e)}",
                    extra={"backend": backend.value},
                )
                continue
            records.extend(batch)
        return records
