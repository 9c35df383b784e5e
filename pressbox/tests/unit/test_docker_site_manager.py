"""Unit tests for the Docker Compose backend."""

import io
import json
import tarfile
from unittest.mock import AsyncMock, patch

import pytest

from pressbox.core.docker_client import DockerClient
from pressbox.core.exceptions import (
    BackendError,
    ComposeCommandError,
    DockerUnavailableError,
    MigrationError,
    SiteNotFoundError,
)
from pressbox.services.docker_site_manager import DockerSiteManager, site_id_for
from pressbox.services.environment import Backend, DockerOptions, SiteDescriptor, SiteStatus
from pressbox.services.site_data import pack_directory
from pressbox.services.template_manager import TemplateManager, derive_ports
from pressbox.tests.mock_utils import create_bundle, create_mock_container, create_mock_process

SUBPROCESS = "pressbox.services.docker_site_manager.asyncio.create_subprocess_exec"


@pytest.fixture
def docker_client():
    client = AsyncMock(spec=DockerClient)
    client.connect.return_value = True
    client.list_containers.return_value = []
    client.exec_run.return_value = (0, b"")
    client.put_archive.return_value = True
    return client


@pytest.fixture
def manager(settings, docker_client):
    return DockerSiteManager(settings, docker_client, TemplateManager(settings))


@pytest.fixture
def compose_ok():
    with patch(SUBPROCESS, AsyncMock(return_value=create_mock_process())) as spawn:
        yield spawn


def _compose_args(spawn) -> list[list[str]]:
    return [list(call.args) for call in spawn.await_args_list]


def test_site_id_is_lowercase():
    assert site_id_for("My-Blog") == "my-blog"


class TestCompose:
    """Tests for the compose subprocess wrapper."""

    @pytest.mark.asyncio
    async def test_command_line(self, manager, settings, compose_ok):
        site_path = settings.docker_sites_path / "blog"

        await manager._compose("blog", "ps")

        (args,) = _compose_args(compose_ok)
        assert args == [
            "docker",
            "compose",
            "--project-name",
            "blog",
            "--project-directory",
            str(site_path),
            "-f",
            str(site_path / "docker-compose.yml"),
            "ps",
        ]

    @pytest.mark.asyncio
    async def test_override_file_is_included(self, manager, settings, compose_ok):
        site_path = settings.docker_sites_path / "blog"
        site_path.mkdir(parents=True)
        (site_path / "docker-compose.override.yml").write_text("services: {}\n")

        await manager._compose("blog", "ps")

        (args,) = _compose_args(compose_ok)
        assert str(site_path / "docker-compose.override.yml") in args

    @pytest.mark.asyncio
    async def test_non_zero_exit_raises(self, manager):
        failing = create_mock_process(returncode=1, stderr=b"no such service: web")
        with patch(SUBPROCESS, AsyncMock(return_value=failing)):
            with pytest.raises(ComposeCommandError) as exc_info:
                await manager._compose("blog", "up", "-d")

        assert exc_info.value.returncode == 1
        assert exc_info.value.details["stderr"] == "no such service: web"
        assert exc_info.value.details["environment"] == "docker"

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, manager):
        hung = create_mock_process()
        hung.communicate = AsyncMock(side_effect=TimeoutError)
        with patch(SUBPROCESS, AsyncMock(return_value=hung)):
            with pytest.raises(ComposeCommandError, match="timed out"):
                await manager._compose("blog", "up", "-d")

        hung.kill.assert_called_once()
        hung.wait.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_binary_raises(self, manager):
        with patch(SUBPROCESS, AsyncMock(side_effect=FileNotFoundError())):
            with pytest.raises(ComposeCommandError, match="not found"):
                await manager._compose("blog", "ps")


class TestCreateSite:
    """Tests for Docker site creation."""

    @pytest.mark.asyncio
    async def test_daemon_down_raises(self, manager, docker_client, settings, compose_ok):
        docker_client.connect.return_value = False

        with pytest.raises(DockerUnavailableError):
            await manager.create_site(SiteDescriptor(name="blog"))

        compose_ok.assert_not_awaited()
        assert not (settings.docker_sites_path / "blog").exists()

    @pytest.mark.asyncio
    async def test_generates_files_and_brings_stack_up(self, manager, settings, compose_ok):
        assert await manager.create_site(SiteDescriptor(name="Blog")) is True

        site_path = settings.docker_sites_path / "blog"
        assert (site_path / "docker-compose.yml").is_file()
        config = json.loads((site_path / "pressbox-config.json").read_text())
        assert config["name"] == "Blog"
        assert config["site_id"] == "blog"
        assert config["backend"] == "docker"

        (args,) = _compose_args(compose_ok)
        assert args[args.index("up") :] == ["up", "-d", "db", "wordpress", "adminer", "nginx", "mailpit"]

    @pytest.mark.asyncio
    async def test_apache_without_mailpit_starts_fewer_services(self, manager, compose_ok):
        options = DockerOptions(web_server="apache", database="mariadb", mailpit=False)

        await manager.create_site(SiteDescriptor(name="blog", docker_options=options))

        (args,) = _compose_args(compose_ok)
        assert args[args.index("up") :] == ["up", "-d", "db", "wordpress", "adminer"]

    @pytest.mark.asyncio
    async def test_failed_up_tears_down_partial_stack(self, manager, settings):
        failing = create_mock_process(returncode=1, stderr=b"port is already allocated")
        spawn = AsyncMock(side_effect=[failing, create_mock_process()])

        with patch(SUBPROCESS, spawn):
            with pytest.raises(ComposeCommandError, match="exit code 1"):
                await manager.create_site(SiteDescriptor(name="blog"))

        up, down = _compose_args(spawn)
        assert "up" in up
        assert down[-3:] == ["down", "-v", "--remove-orphans"]
        assert not (settings.docker_sites_path / "blog").exists()
        assert not (settings.configs_path / "blog").exists()

    @pytest.mark.asyncio
    async def test_failed_rollback_keeps_original_error(self, manager):
        failing = create_mock_process(returncode=1, stderr=b"port is already allocated")
        down_failing = create_mock_process(returncode=1, stderr=b"daemon hiccup")

        with patch(SUBPROCESS, AsyncMock(side_effect=[failing, down_failing])):
            with pytest.raises(ComposeCommandError, match="docker compose up failed"):
                await manager.create_site(SiteDescriptor(name="blog"))

    @pytest.mark.asyncio
    async def test_existing_site_is_not_overwritten(self, manager, settings, compose_ok):
        await manager.create_site(SiteDescriptor(name="blog"))

        with pytest.raises(BackendError, match="already exists"):
            await manager.create_site(SiteDescriptor(name="Blog"))

        assert len(_compose_args(compose_ok)) == 1
        assert (settings.docker_sites_path / "blog" / "docker-compose.yml").is_file()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop_unknown_site_raise(self, manager, compose_ok):
        with pytest.raises(SiteNotFoundError):
            await manager.start_site("ghost")
        with pytest.raises(SiteNotFoundError):
            await manager.stop_site("ghost")
        compose_ok.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_start_and_stop_run_compose(self, manager, compose_ok):
        await manager.create_site(SiteDescriptor(name="blog"))

        assert await manager.start_site("blog") is True
        assert await manager.stop_site("blog") is True

        commands = [args[-1] for args in _compose_args(compose_ok)[1:]]
        assert commands == ["start", "stop"]

    @pytest.mark.asyncio
    async def test_cleanup_removes_stack_and_files(self, manager, settings, compose_ok):
        await manager.create_site(SiteDescriptor(name="blog"))

        await manager.cleanup_site("blog")

        assert _compose_args(compose_ok)[-1][-3:] == ["down", "-v", "--remove-orphans"]
        assert not (settings.docker_sites_path / "blog").exists()
        assert not (settings.configs_path / "blog").exists()
        assert not (settings.logs_path / "blog").exists()

    @pytest.mark.asyncio
    async def test_cleanup_without_compose_file_skips_down(self, manager, settings, compose_ok):
        (settings.configs_path / "blog").mkdir(parents=True)

        await manager.cleanup_site("blog")

        compose_ok.assert_not_awaited()
        assert not (settings.configs_path / "blog").exists()


class TestListSites:
    """Tests for container-label inventory."""

    @pytest.mark.asyncio
    async def test_groups_containers_by_site_label(self, manager, docker_client, settings):
        site_path = settings.docker_sites_path / "shop"
        site_path.mkdir(parents=True)
        (site_path / "pressbox-config.json").write_text(json.dumps({"name": "Shop"}))
        docker_client.list_containers.return_value = [
            create_mock_container("blog_wordpress", "blog", status="exited"),
            create_mock_container("blog_db", "blog", status="exited", service="db"),
            create_mock_container("shop_db", "shop", service="db"),
            create_mock_container("shop_wordpress", "shop", status="exited"),
        ]

        sites = await manager.list_sites()

        docker_client.list_containers.assert_awaited_once_with(
            all=True, labels={"pressbox.managed": "true"}
        )
        assert [site["name"] for site in sites] == ["blog", "Shop"]
        blog, shop = sites
        assert blog["status"] is SiteStatus.STOPPED
        assert blog["containers"] == ["blog_db", "blog_wordpress"]
        assert blog["url"] == f"http://localhost:{derive_ports('blog').http}"
        assert shop["status"] is SiteStatus.RUNNING
        assert shop["config"] == {"name": "Shop"}

    @pytest.mark.asyncio
    async def test_unlabelled_containers_are_ignored(self, manager, docker_client):
        stray = create_mock_container("other", "x")
        stray.labels = {}
        docker_client.list_containers.return_value = [stray]

        assert await manager.list_sites() == []

    @pytest.mark.asyncio
    async def test_daemon_errors_propagate(self, manager, docker_client):
        docker_client.list_containers.side_effect = RuntimeError("daemon gone")

        with pytest.raises(RuntimeError):
            await manager.list_sites()


class TestSiteDataHooks:
    """Tests for export/import against the database container."""

    @pytest.mark.asyncio
    async def test_export_bundles_files_and_dump(self, manager, docker_client, compose_ok):
        await manager.create_site(SiteDescriptor(name="blog"))
        docker_client.exec_run.return_value = (0, b"-- MySQL dump")

        bundle = await manager.export_site_data("blog")

        assert bundle.source is Backend.DOCKER
        assert bundle.database_dump == b"-- MySQL dump"
        assert bundle.config["site_id"] == "blog"
        container, cmd = docker_client.exec_run.await_args.args
        assert container == "blog_db"
        assert cmd[:2] == ["sh", "-c"]

    @pytest.mark.asyncio
    async def test_export_dump_failure_raises(self, manager, docker_client, compose_ok):
        await manager.create_site(SiteDescriptor(name="blog"))
        docker_client.exec_run.return_value = (-1, b"")

        with pytest.raises(MigrationError) as exc_info:
            await manager.export_site_data("blog")

        assert exc_info.value.stage == "export"

    @pytest.mark.asyncio
    async def test_import_restores_files_and_loads_dump(
        self, manager, docker_client, settings, tmp_path, compose_ok
    ):
        await manager.create_site(SiteDescriptor(name="blog"))
        source = tmp_path / "source"
        (source / "wp-content" / "uploads").mkdir(parents=True)
        (source / "wp-content" / "uploads" / "logo.png").write_bytes(b"\x89PNG")
        (source / "wp-config.php").write_text("<?php // local config")
        bundle = create_bundle("blog", "local", database_dump=b"INSERT INTO wp_posts;")
        bundle.files = await pack_directory(source)

        await manager.import_site_data("blog", bundle)

        wordpress = settings.docker_sites_path / "blog" / "wordpress"
        assert (wordpress / "wp-content" / "uploads" / "logo.png").read_bytes() == b"\x89PNG"
        assert not (wordpress / "wp-config.php").exists()

        container, path, data = docker_client.put_archive.await_args.args
        assert (container, path) == ("blog_db", "/tmp")
        with tarfile.open(fileobj=io.BytesIO(data)) as archive:
            member = archive.extractfile("pressbox-import.sql")
            assert member is not None
            assert member.read() == b"INSERT INTO wp_posts;"
        docker_client.exec_run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_import_without_dump_skips_database(self, manager, docker_client, compose_ok):
        await manager.create_site(SiteDescriptor(name="blog"))

        await manager.import_site_data("blog", create_bundle("blog", files=b""))

        docker_client.put_archive.assert_not_awaited()
        docker_client.exec_run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejected_archive_raises(self, manager, docker_client, compose_ok):
        await manager.create_site(SiteDescriptor(name="blog"))
        docker_client.put_archive.return_value = False
        bundle = create_bundle("blog", files=b"", database_dump=b"SELECT 1;")

        with pytest.raises(MigrationError, match="Could not copy"):
            await manager.import_site_data("blog", bundle)
        docker_client.exec_run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_load_raises(self, manager, docker_client, compose_ok):
        await manager.create_site(SiteDescriptor(name="blog"))
        docker_client.exec_run.return_value = (1, b"ERROR 1064 (42000)")
        bundle = create_bundle("blog", files=b"", database_dump=b"garbage")

        with pytest.raises(MigrationError, match="ERROR 1064") as exc_info:
            await manager.import_site_data("blog", bundle)

        assert exc_info.value.stage == "import"

    @pytest.mark.asyncio
    async def test_close_closes_docker_client(self, manager, docker_client):
        await manager.close()

        docker_client.close.assert_awaited_once()
