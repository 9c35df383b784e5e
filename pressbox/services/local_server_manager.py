"""Local backend: WordPress sites served by the PHP built-in server.

Manages WordPress sites without Docker, using the host's PHP interpreter and a
file-based site layout under ``<home>/sites/<name>``:

    wordpress/              WordPress core (downloaded, or a minimal skeleton)
    database/               Local database files
    logs/                   PHP built-in server output
    pressbox-config.json    Site descriptor, the local backend's inventory record

Server processes are tracked in memory; a site is "running" while its
``php -S`` process is alive in this process.
"""

from __future__ import annotations

import asyncio
import io
import json
import re
import secrets
import shutil
import tarfile
from pathlib import Path
from typing import Any

import httpx

from pressbox.core.config import Settings
from pressbox.core.exceptions import (
    InvalidInputError,
    MigrationError,
    PHPServerError,
    SiteNotFoundError,
)
from pressbox.core.logging import get_logger, sanitize_error, site_context
from pressbox.core.ports import find_available_port
from pressbox.services.environment import (
    Backend,
    LocalServer,
    PHPInfo,
    SiteDescriptor,
    SiteStatus,
)
from pressbox.services.site_data import SiteDataBundle, pack_directory, unpack_archive
from pressbox.services.template_manager import TEMPLATES_PATH, render_template

logger = get_logger(__name__)

SITE_CONFIG_FILE = "pressbox-config.json"
PHP_VERSION_PATTERN = re.compile(r"PHP (\d+\.\d+\.\d+)")
SALT_KEYS = (
    "AUTH_KEY",
    "SECURE_AUTH_KEY",
    "LOGGED_IN_KEY",
    "NONCE_KEY",
    "AUTH_SALT",
    "SECURE_AUTH_SALT",
    "LOGGED_IN_SALT",
    "NONCE_SALT",
)


class LocalServerManager:
    """Creates and runs WordPress sites on the local PHP built-in server.

    Implements both LocalBackendProtocol and SiteDataHooksProtocol.
    """

    def __init__(self, settings: Settings, templates_path: Path | None = None) -> None:
        self._settings = settings
        self._templates_path = (templates_path or TEMPLATES_PATH) / "local"
        self._servers: dict[str, LocalServer] = {}
        self._php: PHPInfo | None = None

    @property
    def sites_path(self) -> Path:
        return self._settings.sites_path

    def site_path(self, name: str) -> Path:
        return self.sites_path / name

    # =========================================================================
    # PHP detection
    # =========================================================================

    async def _php_version(self, binary: str) -> str | None:
        try:
            process = await asyncio.create_subprocess_exec(
                binary,
                "--version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError:
            return None

        try:
            stdout, _stderr = await asyncio.wait_for(
                process.communicate(), timeout=self._settings.probe_timeout
            )
        except TimeoutError:
            process.kill()
            await process.wait()
            logger.warning(f"{binary} --version timed out")
            return None

        if process.returncode != 0:
            return None
        match = PHP_VERSION_PATTERN.search(stdout.decode(errors="replace"))
        return match.group(1) if match else None

    async def detect(self) -> PHPInfo:
        """Detect a PHP interpreter by trying each configured binary in order."""
        for binary in self._settings.php_binaries:
            version = await self._php_version(binary)
            if version:
                self._php = PHPInfo(version=version, path=binary, available=True)
                logger.debug(f"Detected PHP {version}", extra={"php_path": binary})
                return self._php

        self._php = PHPInfo()
        logger.debug("No PHP interpreter found", extra={"tried": self._settings.php_binaries})
        return self._php

    # =========================================================================
    # Site creation
    # =========================================================================

    async def create_site(self, descriptor: SiteDescriptor) -> bool:
        """Create a WordPress site directory with config and database layout.

        Raises:
            PHPServerError: If the site exists or any creation step fails
        """
        site_path = self.site_path(descriptor.name)
        with site_context(descriptor.name):
            if (site_path / SITE_CONFIG_FILE).exists():
                raise PHPServerError(f"Site {descriptor.name} already exists")

            try:
                site_path.mkdir(parents=True, exist_ok=True)
                await self._install_wordpress(site_path, descriptor.wordpress_version)
                self._write_wp_config(site_path, descriptor)
                (site_path / "database").mkdir(exist_ok=True)
                self._save_site_config(site_path, descriptor.bound_to(Backend.LOCAL))
            except (OSError, httpx.HTTPError, tarfile.TarError) as e:
                raise PHPServerError(
                    f"Failed to create site {descriptor.name}: {sanitize_error(e)}"
                ) from e

            logger.info(f"Created WordPress site: {descriptor.name}")
            return True

    async def _install_wordpress(self, site_path: Path, version: str) -> None:
        wordpress_path = site_path / "wordpress"
        if (wordpress_path / "index.php").exists():
            logger.debug("WordPress already present, skipping download")
            return

        if self._settings.wordpress_download:
            try:
                await self._download_wordpress(site_path, version)
                return
            except (httpx.HTTPError, tarfile.TarError) as e:
                logger.warning(
                    f"Failed to download WordPress, creating basic structure: {sanitize_error(e)}"
                )

        self._create_basic_wordpress_files(wordpress_path)

    async def _download_wordpress(self, site_path: Path, version: str) -> None:
        archive = "latest" if version == "latest" else f"wordpress-{version}"
        url = self._settings.wordpress_download_url.format(archive=archive)
        logger.info(f"Downloading WordPress {version}", extra={"url": url})

        async with httpx.AsyncClient(
            timeout=self._settings.wordpress_download_timeout, follow_redirects=True
        ) as client:
            response = await client.get(url)
            response.raise_for_status()

        def _extract(data: bytes) -> None:
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tar:
                tar.extractall(site_path, filter="data")

        await asyncio.to_thread(_extract, response.content)

    def _create_basic_wordpress_files(self, wordpress_path: Path) -> None:
        wordpress_path.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(self._templates_path / "index.php", wordpress_path / "index.php")
        shutil.copyfile(
            self._templates_path / "wp-config-sample.php",
            wordpress_path / "wp-config-sample.php",
        )
        for directory in ("themes", "plugins", "uploads"):
            (wordpress_path / "wp-content" / directory).mkdir(parents=True, exist_ok=True)
        logger.debug("Created basic WordPress file structure")

    def _write_wp_config(self, site_path: Path, descriptor: SiteDescriptor) -> None:
        """Render wp-config.php from the bundled sample with fresh salts."""
        sample = (self._templates_path / "wp-config-sample.php").read_text(encoding="utf-8")
        variables = {
            "SITE_NAME": descriptor.name,
            "DB_NAME": descriptor.db_name,
            "SITE_URL": f"http://localhost:{descriptor.port}",
        }
        variables.update({key: secrets.token_urlsafe(48) for key in SALT_KEYS})
        config_path = site_path / "wordpress" / "wp-config.php"
        config_path.write_text(render_template(sample, variables), encoding="utf-8")

    def _save_site_config(self, site_path: Path, descriptor: SiteDescriptor) -> None:
        (site_path / SITE_CONFIG_FILE).write_text(
            json.dumps(descriptor.model_dump(mode="json"), indent=2), encoding="utf-8"
        )

    def _load_site_config(self, name: str) -> dict[str, Any]:
        config_path = self.site_path(name) / SITE_CONFIG_FILE
        try:
            data: dict[str, Any] = json.loads(config_path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise SiteNotFoundError(name, environment=Backend.LOCAL.value) from e
        except (OSError, json.JSONDecodeError) as e:
            raise PHPServerError(f"Unreadable site config for {name}: {e}") from e
        return data

    # =========================================================================
    # Server lifecycle
    # =========================================================================

    async def start_site(self, name: str) -> LocalServer | None:
        """Start the PHP built-in server for a site.

        Returns:
            The running server handle (the existing one if already running)

        Raises:
            SiteNotFoundError: If the site does not exist
            PHPServerError: If PHP is unavailable or the server exits immediately
        """
        with site_context(name):
            running = self._servers.get(name)
            if running is not None and running.process.returncode is None:
                return running

            config = self._load_site_config(name)
            php = self._php if self._php and self._php.available else await self.detect()
            if not php.available:
                raise PHPServerError("Local PHP not available - install PHP or use Portable PHP")

            preferred = int(config.get("port") or self._settings.local_base_port)
            in_use = {server.port for server in self._servers.values()}
            try:
                port = await asyncio.to_thread(find_available_port, preferred, in_use)
            except RuntimeError as e:
                raise PHPServerError(str(e)) from e

            wordpress_path = self.site_path(name) / "wordpress"
            log_dir = self.site_path(name) / "logs"
            log_dir.mkdir(exist_ok=True)
            with open(log_dir / "php-server.log", "ab") as log_file:
                try:
                    process = await asyncio.create_subprocess_exec(
                        php.path,
                        "-S",
                        f"localhost:{port}",
                        "-t",
                        str(wordpress_path),
                        cwd=str(wordpress_path),
                        stdout=log_file,
                        stderr=asyncio.subprocess.STDOUT,
                    )
                except OSError as e:
                    raise PHPServerError(f"Failed to spawn PHP server: {e}") from e

            await asyncio.sleep(self._settings.php_server_startup_delay)
            if process.returncode is not None:
                raise PHPServerError(
                    f"PHP server for {name} exited with code {process.returncode}",
                    details={"port": port},
                )

            server = LocalServer(port=port, url=f"http://localhost:{port}", process=process)
            self._servers[name] = server
            logger.info(f"Started site {name} on port {port}", extra={"port": port})
            return server

    async def stop_site(self, name: str) -> bool:
        """Stop a site's server. Returns False if it was not running."""
        server = self._servers.pop(name, None)
        if server is None or server.process is None:
            return False

        process = server.process
        if process.returncode is None:
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=10)
            except TimeoutError:
                logger.warning(f"PHP server for {name} did not exit, killing")
                process.kill()
                await process.wait()

        server.status = SiteStatus.STOPPED
        logger.info(f"Stopped site {name}")
        return True

    async def delete_site(self, name: str) -> bool:
        """Stop and remove a site. Returns False if the site does not exist."""
        if not name or "/" in name or name in (".", ".."):
            raise InvalidInputError("Invalid site name", field="name", value=name)

        await self.stop_site(name)
        site_path = self.site_path(name)
        if not site_path.exists():
            return False

        await asyncio.to_thread(shutil.rmtree, site_path)
        logger.info(f"Deleted site {name}")
        return True

    async def list_sites(self) -> list[dict[str, Any]]:
        """List sites that have a saved config under the sites directory."""
        if not self.sites_path.is_dir():
            return []

        sites = []
        for config_path in sorted(self.sites_path.glob(f"*/{SITE_CONFIG_FILE}")):
            name = config_path.parent.name
            try:
                config = json.loads(config_path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Skipping site {name} with unreadable config: {e}")
                continue
            if config.get("backend", Backend.LOCAL.value) != Backend.LOCAL.value:
                continue

            server = self._servers.get(name)
            running = server is not None and server.process.returncode is None
            port = server.port if running and server else config.get("port")
            sites.append(
                {
                    "name": name,
                    "status": SiteStatus.RUNNING if running else SiteStatus.STOPPED,
                    "url": f"http://localhost:{port}",
                    "config": config,
                }
            )
        return sites

    # =========================================================================
    # Export / import hooks
    # =========================================================================

    async def export_site_data(self, name: str) -> SiteDataBundle:
        config = self._load_site_config(name)
        files = await pack_directory(self.site_path(name) / "wordpress")
        return SiteDataBundle(site_name=name, source=Backend.LOCAL, config=config, files=files)

    async def import_site_data(self, name: str, bundle: SiteDataBundle) -> None:
        """Unpack a bundle into an existing local site.

        The site's own wp-config.php is kept; local sites cannot load a SQL
        dump, so one is stored under database/ for manual import.
        """
        site_path = self.site_path(name)
        if not (site_path / SITE_CONFIG_FILE).exists():
            raise SiteNotFoundError(name, environment=Backend.LOCAL.value)

        wordpress_path = site_path / "wordpress"
        wp_config = wordpress_path / "wp-config.php"
        own_config = wp_config.read_bytes() if wp_config.exists() else None

        await unpack_archive(bundle.files, wordpress_path)
        if own_config is not None:
            wp_config.write_bytes(own_config)

        if bundle.database_dump:
            dump_path = site_path / "database" / "import.sql"
            try:
                dump_path.parent.mkdir(exist_ok=True)
                dump_path.write_bytes(bundle.database_dump)
            except OSError as e:
                raise MigrationError(f"Could not store database dump: {e}", stage="import") from e
            logger.warning(
                f"Database dump for {name} saved to database/import.sql; import it manually",
                extra={"bytes": len(bundle.database_dump)},
            )

    async def close(self) -> None:
        """Stop every server started by this manager."""
        for name in list(self._servers):
            await self.stop_site(name)
