"""Docker backend: WordPress sites as Docker Compose stacks.

Each site is a Compose project named after its site id with the layout:

    <home>/docker-sites/<id>/docker-compose.yml   Rendered manifest
    <home>/docker-sites/<id>/.env                 Substitution variables
    <home>/docker-sites/<id>/wordpress/           Bind-mounted web root
    <home>/configs/<id>/                          Web server, PHP and MySQL configs

Compose is driven as a subprocess with a hard timeout; containers are
inspected through docker-py via DockerClient. Every container carries the
``pressbox.site`` label, which is how the inventory groups them.
"""

from __future__ import annotations

import asyncio
import io
import json
import shutil
import tarfile
import time
from pathlib import Path
from typing import Any

from pressbox.core.config import Settings
from pressbox.core.docker_client import DockerClient
from pressbox.core.exceptions import (
    BackendError,
    ComposeCommandError,
    DockerUnavailableError,
    MigrationError,
    SiteNotFoundError,
)
from pressbox.core.logging import get_logger, sanitize_error, site_context
from pressbox.services.environment import Backend, SiteDescriptor, SiteStatus
from pressbox.services.site_data import SiteDataBundle, pack_directory, unpack_archive
from pressbox.services.template_manager import (
    ComposeTemplateConfig,
    TemplateManager,
    derive_ports,
)

logger = get_logger(__name__)

SITE_CONFIG_FILE = "pressbox-config.json"
SITE_LABEL = "pressbox.site"
MANAGED_LABEL = "pressbox.managed"

DUMP_SCRIPT = (
    "command -v mysqldump >/dev/null && DUMP=mysqldump || DUMP=mariadb-dump; "
    'MYSQL_PWD="$MYSQL_ROOT_PASSWORD" $DUMP -uroot --single-transaction '
    '"$MYSQL_DATABASE" 2>/dev/null'
)
LOAD_SCRIPT = (
    "command -v mysql >/dev/null && CLIENT=mysql || CLIENT=mariadb; "
    'MYSQL_PWD="$MYSQL_ROOT_PASSWORD" $CLIENT -uroot "$MYSQL_DATABASE" '
    "< /tmp/pressbox-import.sql && rm -f /tmp/pressbox-import.sql"
)


def site_id_for(name: str) -> str:
    """Compose project names must be lowercase."""
    return name.lower()


class DockerSiteManager:
    """Creates and controls Docker Compose stacks for WordPress sites.

    Implements both DockerBackendProtocol and SiteDataHooksProtocol.
    """

    def __init__(
        self,
        settings: Settings,
        docker_client: DockerClient,
        template_manager: TemplateManager,
    ) -> None:
        self._settings = settings
        self._docker = docker_client
        self._templates = template_manager

    async def is_running(self) -> bool:
        """Check whether the Docker daemon answers a ping."""
        return await self._docker.connect()

    # =========================================================================
    # Compose invocation
    # =========================================================================

    def _compose_files(self, site_id: str) -> list[Path]:
        site_path = self._templates.site_path(site_id)
        files = [site_path / "docker-compose.yml"]
        override = site_path / "docker-compose.override.yml"
        if override.exists():
            files.append(override)
        return files

    async def _compose(self, site_id: str, *args: str) -> str:
        """Run a compose subcommand for a site's project.

        Returns:
            Captured stdout

        Raises:
            ComposeCommandError: On non-zero exit, timeout, or missing binary
        """
        cmd = [
            *self._settings.compose_command,
            "--project-name",
            site_id,
            "--project-directory",
            str(self._templates.site_path(site_id)),
        ]
        for compose_file in self._compose_files(site_id):
            cmd.extend(["-f", str(compose_file)])
        cmd.extend(args)

        timeout = self._settings.subprocess_timeout
        start = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ComposeCommandError(
                f"Compose command not found: {self._settings.compose_command[0]}",
                command=cmd,
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except TimeoutError as e:
            process.kill()
            await process.wait()
            raise ComposeCommandError(
                f"Compose command timed out after {timeout}s",
                command=cmd,
            ) from e

        out = stdout.decode(errors="replace").strip()
        err = stderr.decode(errors="replace").strip()
        if process.returncode != 0:
            raise ComposeCommandError(
                f"docker compose {args[0]} failed with exit code {process.returncode}",
                command=cmd,
                returncode=process.returncode,
                stdout=out,
                stderr=err,
            )

        logger.debug(
            f"docker compose {args[0]} completed for {site_id}",
            extra={"site_id": site_id, "duration_ms": int((time.monotonic() - start) * 1000)},
        )
        return out

    # =========================================================================
    # Site lifecycle
    # =========================================================================

    def _services(self, config: ComposeTemplateConfig) -> list[str]:
        services = ["db", "wordpress", "adminer"]
        if config.web_server == "nginx":
            services.append("nginx")
        if config.mailpit:
            services.append("mailpit")
        return services

    async def create_site(self, descriptor: SiteDescriptor) -> bool:
        """Generate the site's Compose stack and bring it up.

        A failure after files were written tears the partial stack down
        again (``docker compose down -v`` plus file removal) before the
        error propagates, so a fallback backend can take the name.

        Raises:
            DockerUnavailableError: If the daemon is not reachable
            BackendError: If a Docker site with the same id already exists
            TemplateError: If configuration files cannot be generated
            ComposeCommandError: If ``docker compose up`` fails
        """
        site_id = site_id_for(descriptor.name)
        with site_context(descriptor.name):
            if not await self.is_running():
                raise DockerUnavailableError()
            if (self._templates.site_path(site_id) / "docker-compose.yml").exists():
                raise BackendError(
                    f"Docker site {site_id} already exists", environment=Backend.DOCKER.value
                )

            options = descriptor.docker_options
            config = ComposeTemplateConfig.from_options(options, descriptor.php_version)
            try:
                files = await asyncio.to_thread(
                    self._templates.save_generated_files,
                    site_id,
                    config,
                    volumes=options.volumes,
                    environment=options.environment,
                )
                site_config = descriptor.bound_to(Backend.DOCKER).model_dump(mode="json")
                site_config["site_id"] = site_id
                await asyncio.to_thread(
                    (files.compose.parent / SITE_CONFIG_FILE).write_text,
                    json.dumps(site_config, indent=2),
                    "utf-8",
                )
                await self._compose(site_id, "up", "-d", *self._services(config))
            except Exception:
                await self._rollback_create(descriptor.name)
                raise

            ports = derive_ports(site_id, self._settings.template_base_port)
            logger.info(
                f"Created Docker site {descriptor.name}",
                extra={"site_id": site_id, "ports": ports.to_dict()},
            )
            return True

    async def _rollback_create(self, name: str) -> None:
        try:
            await self.cleanup_site(name)
        except Exception as e:
            logger.warning(
                f"Could not roll back failed Docker site {name}: {sanitize_error(e)}",
                extra={"site_id": site_id_for(name)},
            )
        else:
            logger.info(f"Rolled back failed Docker site {name}")

    def _require_site(self, name: str) -> str:
        site_id = site_id_for(name)
        if not (self._templates.site_path(site_id) / "docker-compose.yml").exists():
            raise SiteNotFoundError(name, environment=Backend.DOCKER.value)
        return site_id

    async def start_site(self, name: str) -> bool:
        site_id = self._require_site(name)
        with site_context(name):
            await self._compose(site_id, "start")
            logger.info(f"Started Docker site {name}")
            return True

    async def stop_site(self, name: str) -> bool:
        site_id = self._require_site(name)
        with site_context(name):
            await self._compose(site_id, "stop")
            logger.info(f"Stopped Docker site {name}")
            return True

    async def cleanup_site(self, name: str) -> None:
        """Remove the site's containers, volumes and generated files.

        Raises:
            ComposeCommandError: If ``docker compose down`` fails; files are
                kept so the teardown can be retried.
        """
        site_id = site_id_for(name)
        with site_context(name):
            site_path = self._templates.site_path(site_id)
            if (site_path / "docker-compose.yml").exists():
                await self._compose(site_id, "down", "-v", "--remove-orphans")

            for path in (
                site_path,
                self._templates.config_path(site_id),
                self._settings.ssl_path / site_id,
                self._settings.logs_path / site_id,
            ):
                if path.exists():
                    await asyncio.to_thread(shutil.rmtree, path)
            logger.info(f"Cleaned up Docker site {name}", extra={"site_id": site_id})

    def _read_site_config(self, site_id: str) -> dict[str, Any]:
        config_path = self._templates.site_path(site_id) / SITE_CONFIG_FILE
        try:
            data: dict[str, Any] = json.loads(config_path.read_text(encoding="utf-8"))
            return data
        except (OSError, json.JSONDecodeError):
            return {}

    async def list_sites(self) -> list[dict[str, Any]]:
        """List sites by grouping PressBox-labelled containers.

        Raises:
            DockerException: If the daemon cannot be queried
        """
        containers = await self._docker.list_containers(
            all=True, labels={MANAGED_LABEL: "true"}
        )

        grouped: dict[str, list[Any]] = {}
        for container in containers:
            site_id = (container.labels or {}).get(SITE_LABEL)
            if site_id:
                grouped.setdefault(site_id, []).append(container)

        sites = []
        for site_id in sorted(grouped):
            members = grouped[site_id]
            running = any(container.status == "running" for container in members)
            config = self._read_site_config(site_id)
            ports = derive_ports(site_id, self._settings.template_base_port)
            sites.append(
                {
                    "name": config.get("name", site_id),
                    "status": SiteStatus.RUNNING if running else SiteStatus.STOPPED,
                    "url": f"http://localhost:{ports.http}",
                    "config": config,
                    "containers": sorted(container.name for container in members),
                }
            )
        return sites

    # =========================================================================
    # Export / import hooks
    # =========================================================================

    async def export_site_data(self, name: str) -> SiteDataBundle:
        """Archive the site's web root and dump its database.

        The database container must be running.
        """
        site_id = self._require_site(name)
        config = self._read_site_config(site_id)
        files = await pack_directory(self._templates.site_path(site_id) / "wordpress")

        exit_code, output = await self._docker.exec_run(
            f"{site_id}_db", ["sh", "-c", DUMP_SCRIPT]
        )
        if exit_code != 0:
            raise MigrationError(
                f"Database dump failed for {name} (exit code {exit_code}); is the site running?",
                site_name=name,
                stage="export",
            )

        logger.info(
            f"Exported Docker site {name}",
            extra={"files_bytes": len(files), "dump_bytes": len(output)},
        )
        return SiteDataBundle(
            site_name=name,
            source=Backend.DOCKER,
            config=config,
            files=files,
            database_dump=output,
        )

    async def import_site_data(self, name: str, bundle: SiteDataBundle) -> None:
        """Restore files and, when present, the database dump into a site.

        The site's generated wp-config.php is kept so it keeps pointing at the
        stack's own database container.
        """
        site_id = self._require_site(name)
        wordpress_path = self._templates.site_path(site_id) / "wordpress"
        wp_config = wordpress_path / "wp-config.php"
        own_config = wp_config.read_bytes() if wp_config.exists() else None

        await unpack_archive(bundle.files, wordpress_path)
        if own_config is not None:
            wp_config.write_bytes(own_config)
        elif wp_config.exists():
            # The image writes wp-config.php from its environment when absent
            wp_config.unlink()

        if bundle.database_dump:
            await self._load_dump(site_id, bundle.database_dump)
        logger.info(f"Imported site data into Docker site {name}")

    async def _load_dump(self, site_id: str, dump: bytes) -> None:
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w") as archive:
            info = tarfile.TarInfo("pressbox-import.sql")
            info.size = len(dump)
            info.mtime = int(time.time())
            archive.addfile(info, io.BytesIO(dump))

        container = f"{site_id}_db"
        if not await self._docker.put_archive(container, "/tmp", buffer.getvalue()):  # noqa: S108
            raise MigrationError(f"Could not copy database dump into {container}", stage="import")

        exit_code, output = await self._docker.exec_run(container, ["sh", "-c", LOAD_SCRIPT])
        if exit_code != 0:
            raise MigrationError(
                f"Database import failed in {container}: {output.decode(errors='replace')[-500:]}",
                stage="import",
            )

    async def close(self) -> None:
        await self._docker.close()

