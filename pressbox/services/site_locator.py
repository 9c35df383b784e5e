"""Resolve which backend owns a site by name."""

from __future__ import annotations

from pressbox.core.logging import get_logger
from pressbox.core.protocols import DockerBackendProtocol
from pressbox.services.docker_site_manager import site_id_for
from pressbox.services.environment import Backend

logger = get_logger(__name__)


class SiteLocator:
    """Looks a site up in the Docker inventory; anything not found there is Local.

    Names are compared by Docker site id (case-insensitively), the same key
    the Docker adapter resolves them with. The local inventory is never
    consulted, so a name unknown to both backends resolves to Local and the
    local adapter reports the miss.
    """

    def __init__(self, docker: DockerBackendProtocol) -> None:
        self._docker = docker

    async def locate(self, site_name: str) -> Backend:
        try:
            sites = await self._docker.list_sites()
        except Exception as e:
            logger.debug(
                f"Docker inventory unavailable while locating {site_name}: {e}",
                extra={"site_name": site_name},
            )
            return Backend.LOCAL

        wanted = site_id_for(site_name)
        if wanted and any(site_id_for(site.get("name") or "") == wanted for site in sites):
            return Backend.DOCKER
        return Backend.LOCAL
