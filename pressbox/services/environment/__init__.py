"""Shared domain models for environment orchestration.

Import from here rather than the submodules:

    from pressbox.services.environment import (
        Backend,
        CapabilitySnapshot,
        SiteDescriptor,
        SiteRecord,
    )

Modules in this package:
    enums: Backend and SiteStatus
    models: capability, descriptor and listing models
"""

from pressbox.services.environment.enums import Backend, SiteStatus
from pressbox.services.environment.models import (
    Capability,
    CapabilitySnapshot,
    DockerOptions,
    LocalServer,
    PHPInfo,
    SiteDescriptor,
    SiteRecord,
    db_identifier,
)

__all__ = [
    "Backend",
    "Capability",
    "CapabilitySnapshot",
    "DockerOptions",
    "LocalServer",
    "PHPInfo",
    "SiteDescriptor",
    "SiteRecord",
    "SiteStatus",
    "db_identifier",
]
