"""Async access to the Docker daemon for PressBox site containers.

docker-py is synchronous, so every call goes through ``asyncio.to_thread``.
The SDK client is only built on ``connect()`` (or the first call that needs
it); an unreachable daemon leaves it unset instead of raising from
``__init__``, which keeps the Docker backend probe cheap.

    async with DockerClient() as docker:
        containers = await docker.list_containers(labels={"pressbox.managed": "true"})
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from docker import DockerClient as BaseDockerClient  # type: ignore[attr-defined]
from docker.errors import DockerException, NotFound

from pressbox.core.logging import get_logger

if TYPE_CHECKING:
    from docker.models.containers import Container

logger = get_logger(__name__)


class DockerClient:
    """Thin async facade over ``docker.DockerClient``.

    Lookups and exec calls report failure through their return values
    (``None``, ``False`` or exit code -1); only ``list_containers`` raises,
    since callers must tell "no sites" apart from "daemon down".
    """

    def __init__(self, docker_host: str | None = None) -> None:
        # None means DOCKER_HOST or the platform default socket
        self._docker_host = docker_host
        self._client: BaseDockerClient | None = None

    @property
    def _host_label(self) -> str:
        return self._docker_host or "default"

    async def __aenter__(self) -> DockerClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: object,
    ) -> None:
        await self.close()

    def _build_sdk_client(self) -> BaseDockerClient:
        if not self._docker_host:
            return BaseDockerClient.from_env()
        return BaseDockerClient(base_url=self._docker_host)

    async def connect(self) -> bool:
        """Ping the daemon, building the SDK client first if needed.

        Returns:
            Whether the daemon answered. A failed ping drops the SDK client so
            the next call retries from scratch.
        """
        try:
            if self._client is None:
                self._client = await asyncio.to_thread(self._build_sdk_client)
            await asyncio.to_thread(self._client.ping)
        except DockerException as e:
            self._client = None
            logger.info(
                f"Docker daemon at {self._host_label} is unavailable: {e}",
                extra={"docker_host": self._host_label},
            )
            return False
        logger.debug("Docker daemon is up", extra={"docker_host": self._host_label})
        return True

    async def _sdk(self) -> BaseDockerClient | None:
        if self._client is None and not await self.connect():
            return None
        return self._client

    async def list_containers(
        self,
        all: bool = True,
        labels: dict[str, str] | None = None,
    ) -> list[Container]:
        """Containers matching every ``labels`` pair, stopped ones included unless ``all=False``.

        Raises:
            DockerException: The daemon is unreachable or rejected the query
        """
        sdk = await self._sdk()
        if sdk is None:
            raise DockerException(f"Docker daemon at {self._host_label} is not reachable")

        label_filter = [f"{key}={value}" for key, value in (labels or {}).items()]
        filters = {"label": label_filter} if label_filter else {}
        found: list[Container] = await asyncio.to_thread(sdk.containers.list, all=all, filters=filters)
        logger.debug(f"{len(found)} containers match {labels or 'no labels'}")
        return found

    async def get_container(self, container_id: str) -> Container | None:
        """Look a container up by name or id; ``None`` when it is missing or the daemon errors."""
        sdk = await self._sdk()
        if sdk is None:
            return None
        try:
            return await asyncio.to_thread(sdk.containers.get, container_id)
        except NotFound:
            logger.debug(f"No container named {container_id}")
        except DockerException as e:
            logger.warning(
                f"Lookup of container {container_id} failed: {e}",
                extra={"container_id": container_id},
            )
        return None

    async def exec_run(self, container_id: str, cmd: list[str]) -> tuple[int, bytes]:
        """Run ``cmd`` inside a container.

        Returns:
            ``(exit_code, output)`` with stdout and stderr combined, or
            ``(-1, b"")`` when the container is missing or the daemon fails.
        """
        container = await self.get_container(container_id)
        if container is None:
            logger.warning(
                f"Skipping {cmd[0] if cmd else 'command'}: container {container_id} not found",
                extra={"container_id": container_id},
            )
            return -1, b""

        try:
            exit_code, output = await asyncio.to_thread(container.exec_run, cmd)
        except DockerException as e:
            logger.error(
                f"{cmd[0] if cmd else 'Command'} in {container_id} failed: {e}",
                extra={"container_id": container_id},
            )
            return -1, b""
        logger.debug(
            f"{cmd[0] if cmd else 'Command'} in {container_id} exited with {exit_code}",
            extra={"container_id": container_id, "exit_code": exit_code},
        )
        return exit_code, output or b""

    async def put_archive(self, container_id: str, path: str, data: bytes) -> bool:
        """Upload a tar archive and unpack it under ``path`` in the container."""
        container = await self.get_container(container_id)
        if container is None:
            return False
        try:
            accepted: bool = await asyncio.to_thread(container.put_archive, path, data)
        except DockerException as e:
            logger.error(
                f"Upload to {container_id}:{path} failed: {e}",
                extra={"container_id": container_id, "path": path},
            )
            return False
        return accepted

    async def close(self) -> None:
        """Release the SDK client; calling it again is harmless."""
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await asyncio.to_thread(client.close)
        except DockerException as e:
            logger.debug(f"Ignoring error while closing Docker client: {e}")
