"""Site data bundles exchanged by backend export/import hooks.

A bundle is everything needed to recreate a site elsewhere:

- ``config``: the site descriptor as a plain dict
- ``files``: gzip-compressed tar of the WordPress tree (paths relative to it)
- ``database_dump``: SQL dump, when the source backend has a SQL server

Archives are packed and unpacked in a worker thread; unpacking refuses
members that would escape the destination directory.
"""

from __future__ import annotations

import asyncio
import io
import tarfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pressbox.core.exceptions import MigrationError
from pressbox.core.logging import get_logger
from pressbox.services.environment import Backend

logger = get_logger(__name__)


@dataclass(slots=True)
class SiteDataBundle:
    site_name: str
    source: Backend
    config: dict[str, Any] = field(default_factory=dict)
    files: bytes = b""
    database_dump: bytes | None = None

    @property
    def size_bytes(self) -> int:
        return len(self.files) + len(self.database_dump or b"")


def _pack(source: Path) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for path in sorted(source.rglob("*")):
            archive.add(path, arcname=str(path.relative_to(source)), recursive=False)
    return buffer.getvalue()


def _unpack(data: bytes, destination: Path) -> int:
    destination.mkdir(parents=True, exist_ok=True)
    root = destination.resolve()
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as archive:
        members = archive.getmembers()
        for member in members:
            target = (root / member.name).resolve()
            if not target.is_relative_to(root) or member.issym() or member.islnk():
                raise MigrationError(
                    f"Refusing unsafe archive entry: {member.name}",
                    stage="import",
                )
        archive.extractall(root, members=members, filter="data")
    return len(members)


async def pack_directory(source: Path) -> bytes:
    """Archive the contents of ``source`` as gzip tar bytes.

    Raises:
        MigrationError: If ``source`` does not exist
    """
    if not source.is_dir():
        raise MigrationError(
            f"Nothing to export: {source.name} does not exist",
            stage="export",
            details={"path": str(source)},
        )
    data = await asyncio.to_thread(_pack, source)
    logger.debug(f"Packed {source.name}", extra={"bytes": len(data)})
    return data


async def unpack_archive(data: bytes, destination: Path) -> int:
    """Extract a bundle archive into ``destination``.

    Returns:
        Number of archive members extracted
    """
    if not data:
        return 0
    try:
        count = await asyncio.to_thread(_unpack, data, destination)
    except tarfile.TarError as e:
        raise MigrationError(f"Corrupt site archive: {e}", stage="import") from e
    logger.debug(f"Unpacked {count} entries into {destination.name}")
    return count
