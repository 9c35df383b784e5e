"""Shared enums for environment orchestration."""

from enum import StrEnum

__all__ = [
    "Backend",
    "SiteStatus",
]


class Backend(StrEnum):
    """Mechanism hosting a WordPress site."""

    LOCAL = "local"
    DOCKER = "docker"

    @property
    def other(self) -> "Backend":
        """The alternate backend, used as the create fallback target."""
        return Backend.DOCKER if self is Backend.LOCAL else Backend.LOCAL


class SiteStatus(StrEnum):
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"
