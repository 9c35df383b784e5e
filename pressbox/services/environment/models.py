"""Shared data models for environment orchestration.

Classes:
    Capability: Point-in-time readiness of one backend
    CapabilitySnapshot: Capabilities of every backend, with derived preference
    DockerOptions: Docker-only site options
    SiteDescriptor: Backend-independent site configuration
    SiteRecord: A listed site tagged with the backend that owns it
    PHPInfo: Result of local PHP interpreter detection
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pressbox.services.environment.enums import Backend, SiteStatus

_SITE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,62}$")


@dataclass(frozen=True, slots=True)
class Capability:
    """Readiness of a single backend.

    Attributes:
        backend: Which backend this describes
        available: Whether the backend is usable right now
        preferred: Derived by the selection policy, never set by callers
        description: Human-readable status or install hint
        version: Detected interpreter/daemon version, if any
    """

    backend: Backend
    available: bool
    preferred: bool
    description: str
    version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.backend.value,
            "available": self.available,
            "preferred": self.preferred,
            "description": self.description,
            "version": self.version,
        }


@dataclass(frozen=True, slots=True)
class CapabilitySnapshot:
    """Capabilities of both backends at one instant. Recomputed on demand, never cached."""

    local: Capability
    docker: Capability

    def __getitem__(self, backend: Backend) -> Capability:
        if backend is Backend.LOCAL:
            return self.local
        return self.docker

    @classmethod
    def from_availability(
        cls,
        *,
        local_available: bool,
        docker_available: bool,
        local_description: str,
        docker_description: str,
        local_version: str | None = None,
    ) -> CapabilitySnapshot:
        """Build a snapshot, deriving ``preferred`` from availability.

        Docker is preferred iff its daemon is reachable. Local is preferred
        whenever Docker is unavailable, or when Local itself is unavailable.
        """
        return cls(
            local=Capability(
                backend=Backend.LOCAL,
                available=local_available,
                preferred=not docker_available or not local_available,
                description=local_description,
                version=local_version,
            ),
            docker=Capability(
                backend=Backend.DOCKER,
                available=docker_available,
                preferred=docker_available,
                description=docker_description,
            ),
        )

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {
            Backend.LOCAL.value: self.local.to_dict(),
            Backend.DOCKER.value: self.docker.to_dict(),
        }


@dataclass(slots=True)
class PHPInfo:
    version: str = ""
    path: str = ""
    available: bool = False


class DockerOptions(BaseModel):
    """Options honoured only by the Docker backend."""

    model_config = ConfigDict(extra="forbid")

    mysql_version: str = "8.0"
    nginx_enabled: bool = False
    ssl_enabled: bool = False
    volumes: list[str] = Field(default_factory=list)
    environment: dict[str, str] = Field(default_factory=dict)
    web_server: str = Field(default="nginx", pattern=r"^(nginx|apache)$")
    database: str = Field(default="mysql", pattern=r"^(mysql|mariadb)$")
    xdebug: bool = False
    mailpit: bool = True


class SiteDescriptor(BaseModel):
    """Configuration identifying a site and its desired backend options.

    ``backend`` may be omitted on create; the orchestrator then substitutes its
    current preferred backend.
    """

    model_config = ConfigDict(extra="ignore")

    name: str
    domain: str = ""
    port: int = Field(default=8080, ge=1, le=65535)
    php_version: str = "8.2"
    wordpress_version: str = "latest"
    db_name: str = ""
    backend: Backend | None = None
    docker_options: DockerOptions = Field(default_factory=DockerOptions)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not _SITE_NAME_PATTERN.match(v):
            raise ValueError(
                "Site name must start with a letter or digit and contain only "
                "letters, digits, '-' or '_' (max 63 characters)"
            )
        return v

    @model_validator(mode="after")
    def fill_derived_defaults(self) -> SiteDescriptor:
        if not self.domain:
            self.domain = f"{self.name}.local"
        if not self.db_name:
            self.db_name = db_identifier(self.name)
        return self

    def bound_to(self, backend: Backend) -> SiteDescriptor:
        """Return a copy bound to ``backend``."""
        return self.model_copy(update={"backend": backend})


class SiteRecord(BaseModel):
    """A site as listed by the orchestrator, tagged with its owning backend."""

    name: str
    environment: Backend
    status: SiteStatus = SiteStatus.STOPPED
    url: str = ""
    config: dict[str, Any] = Field(default_factory=dict)


@dataclass(slots=True)
class LocalServer:
    """Handle for a running PHP built-in server."""

    port: int
    url: str
    status: SiteStatus = SiteStatus.RUNNING
    process: Any = field(default=None, repr=False)


def db_identifier(name: str) -> str:
    """Normalise a site name into a database identifier."""
    return "".join(char if char.isalnum() else "_" for char in name).lower()
