"""Backend capability probing.

Detects which backends can run sites on this host right now. Probing never
raises: a failing, hanging or crashing check simply reports the backend as
unavailable.
"""

from __future__ import annotations

import asyncio

from pressbox.core.logging import get_logger, sanitize_error
from pressbox.core.protocols import DockerBackendProtocol, LocalBackendProtocol
from pressbox.services.environment import CapabilitySnapshot, PHPInfo

logger = get_logger(__name__)

LOCAL_UNAVAILABLE = "Local PHP not available - install PHP or use Portable PHP"
DOCKER_AVAILABLE = "Docker containers with WordPress + MySQL + Nginx"
DOCKER_UNAVAILABLE = "Docker not available - install Docker Desktop"


class CapabilityProbe:
    """Runs the local and Docker readiness checks concurrently."""

    def __init__(
        self,
        local: LocalBackendProtocol,
        docker: DockerBackendProtocol,
        timeout: float = 10.0,
    ) -> None:
        self._local = local
        self._docker = docker
        self._timeout = timeout

    async def _check_local(self) -> PHPInfo:
        try:
            return await asyncio.wait_for(self._local.detect(), timeout=self._timeout)
        except Exception as e:
            logger.warning(
                f"Local PHP detection failed: {sanitize_error(e)}",
                extra={"backend": "local", "error_type": type(e).__name__},
            )
            return PHPInfo()

    async def _check_docker(self) -> bool:
        try:
            return bool(await asyncio.wait_for(self._docker.is_running(), timeout=self._timeout))
        except Exception as e:
            logger.warning(
                f"Docker availability check failed: {sanitize_error(e)}",
                extra={"backend": "docker", "error_type": type(e).__name__},
            )
            return False

    async def probe(self) -> CapabilitySnapshot:
        """Build a fresh capability snapshot. Never raises."""
        php, docker_available = await asyncio.gather(self._check_local(), self._check_docker())

        snapshot = CapabilitySnapshot.from_availability(
            local_available=php.available,
            docker_available=docker_available,
            local_description=(
                f"Local PHP {php.version} + Built-in Server" if php.available else LOCAL_UNAVAILABLE
            ),
            docker_description=DOCKER_AVAILABLE if docker_available else DOCKER_UNAVAILABLE,
            local_version=php.version or None,
        )
        logger.debug(
            "Probed environment capabilities",
            extra={"local_available": php.available, "docker_available": docker_available},
        )
        return snapshot
