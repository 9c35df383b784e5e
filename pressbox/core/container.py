"""Service container used by the CLI to build and tear down PressBox services.

Each service is registered under a name with a zero-argument factory. The CLI
builds everything through ``wire_services`` and resolves the environment
manager; tests swap pieces out with ``override``:

    container = Container()
    await wire_services(container)
    manager = await container.get_async("environment_manager")
    ...
    await container.shutdown()
"""

__all__ = [
    "CircularDependencyError",
    "Container",
    "ServiceAlreadyRegisteredError",
    "ServiceNotFoundError",
    "wire_services",
]

import asyncio
import inspect
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pressbox.core.config import Settings, get_settings
from pressbox.core.logging import get_logger

logger = get_logger(__name__)


class ServiceNotFoundError(Exception):
    def __init__(self, service_name: str) -> None:
        super().__init__(f"No service named '{service_name}' is registered")
        self.service_name = service_name


class ServiceAlreadyRegisteredError(Exception):
    def __init__(self, service_name: str) -> None:
        super().__init__(f"A service named '{service_name}' is already registered")
        self.service_name = service_name


class CircularDependencyError(Exception):
    """A factory asked, directly or indirectly, for the service it is building."""

    def __init__(self, service_name: str, resolution_stack: list[str]) -> None:
        self.service_name = service_name
        self.resolution_stack = resolution_stack
        path = " -> ".join(resolution_stack + [service_name])
        super().__init__(f"Circular dependency while resolving services: {path}")


@dataclass
class ServiceRegistration:
    factory: Callable[[], Any]
    is_singleton: bool = True
    is_async: bool = False
    instance: Any = None

    @property
    def cached(self) -> bool:
        return self.is_singleton and self.instance is not None


class Container:
    """Named service registrations plus the singletons built from them."""

    def __init__(self) -> None:
        self._registrations: dict[str, ServiceRegistration] = {}
        self._overrides: dict[str, Any] = {}
        self._resolving: list[str] = []
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def registered_services(self) -> list[str]:
        return list(self._registrations)

    def _add(self, name: str, registration: ServiceRegistration, kind: str) -> None:
        if name in self._registrations:
            raise ServiceAlreadyRegisteredError(name)
        self._registrations[name] = registration
        logger.debug(f"Registered {kind} '{name}'")

    def register_singleton(self, name: str, factory: Callable[[], Any]) -> None:
        self._add(name, ServiceRegistration(factory), "singleton")

    def register_factory(self, name: str, factory: Callable[[], Any]) -> None:
        """Register ``factory`` so that every ``get`` builds a fresh instance."""
        self._add(name, ServiceRegistration(factory, is_singleton=False), "factory")

    def register_async_singleton(self, name: str, factory: Callable[[], Any]) -> None:
        """Register a coroutine function; resolve it with ``get_async``."""
        self._add(name, ServiceRegistration(factory, is_async=True), "async singleton")

    def _registration(self, name: str) -> ServiceRegistration:
        try:
            return self._registrations[name]
        except KeyError:
            raise ServiceNotFoundError(name) from None

    def _enter(self, name: str) -> None:
        if name in self._resolving:
            raise CircularDependencyError(name, list(self._resolving))
        self._resolving.append(name)

    def get(self, name: str) -> Any:
        """Resolve a service built by a plain (non-async) factory.

        Raises:
            ServiceNotFoundError: Nothing is registered or overridden under ``name``
            CircularDependencyError: The factory chain loops back to ``name``
            RuntimeError: The service was registered as async
        """
        if name in self._overrides:
            return self._overrides[name]
        registration = self._registration(name)
        if registration.is_async:
            raise RuntimeError(f"'{name}' has an async factory; resolve it with get_async()")
        if registration.cached:
            return registration.instance

        self._enter(name)
        try:
            instance = registration.factory()
        finally:
            self._resolving.pop()
        if registration.is_singleton:
            registration.instance = instance
        return instance

    async def get_async(self, name: str) -> Any:
        """Resolve any service, awaiting async factories.

        Concurrent first requests for one singleton share a single build.
        """
        if name in self._overrides:
            return self._overrides[name]
        registration = self._registration(name)
        if registration.cached:
            return registration.instance

        async with self._locks.setdefault(name, asyncio.Lock()):
            if registration.cached:
                return registration.instance
            self._enter(name)
            try:
                instance = registration.factory()
                if registration.is_async:
                    instance = await instance
            finally:
                self._resolving.pop()
            if registration.is_singleton:
                registration.instance = instance
            return instance

    def override(self, name: str, instance: Any) -> None:
        """Serve ``instance`` for ``name`` until the override is cleared."""
        self._overrides[name] = instance

    def clear_override(self, name: str) -> None:
        self._overrides.pop(name, None)

    def clear_all_overrides(self) -> None:
        self._overrides.clear()

    async def shutdown(self) -> None:
        """Release built singletons, last registered first.

        Each instance gets its ``close()`` (or, failing that, ``shutdown()``)
        called and awaited when it is a coroutine function. A failing service
        is logged and the rest still run. Instances are dropped afterwards,
        so a later ``get`` builds a new one.
        """
        for name in reversed(self._registrations):
            registration = self._registrations[name]
            if registration.instance is None:
                continue
            instance, registration.instance = registration.instance, None

            release = getattr(instance, "close", None) or getattr(instance, "shutdown", None)
            if release is None:
                continue
            try:
                if inspect.iscoroutinefunction(release):
                    await release()
                else:
                    release()
            except Exception as e:
                logger.warning(f"Failed to release service '{name}': {e}")
            else:
                logger.debug(f"Released service '{name}'")


async def wire_services(container: Container, settings: Settings | None = None) -> None:
    """Register the PressBox services.

    The environment manager is an async singleton that depends on both site
    managers; the Docker site manager shares the container's Docker client
    and template manager, so overriding either one reaches it.
    """
    from pressbox.core.docker_client import DockerClient
    from pressbox.services.docker_site_manager import DockerSiteManager
    from pressbox.services.environment_manager import EnvironmentManager
    from pressbox.services.local_server_manager import LocalServerManager
    from pressbox.services.template_manager import TemplateManager

    cfg = settings or get_settings()

    container.register_singleton("settings", lambda: cfg)
    container.register_singleton("docker_client", lambda: DockerClient(docker_host=cfg.docker_host))
    container.register_singleton("template_manager", lambda: TemplateManager(cfg))
    container.register_singleton("local_server_manager", lambda: LocalServerManager(cfg))
    container.register_singleton(
        "docker_site_manager",
        lambda: DockerSiteManager(
            cfg,
            docker_client=container.get("docker_client"),
            template_manager=container.get("template_manager"),
        ),
    )

    async def build_environment_manager() -> EnvironmentManager:
        return EnvironmentManager(
            container.get("local_server_manager"),
            container.get("docker_site_manager"),
            probe_timeout=cfg.probe_timeout,
            default_backend=cfg.default_backend,
        )

    container.register_async_singleton("environment_manager", build_environment_manager)
    logger.debug(f"Wired {len(container.registered_services)} services")
