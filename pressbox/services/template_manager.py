"""Docker Compose template generation for PressBox sites.

Turns a site's Docker options into the artifacts the Docker backend needs
before it can start containers:

- docker-compose.yml, selected by ``"{web_server}-{database}"``
- .env with every substitution variable
- docker-compose.override.yml for extra volumes/environment (only when set)
- web server, PHP and MySQL configuration files

Templates are plain text with ``${VAR}`` placeholders. Rendering is a single
pass of literal substitutions (see ``render_template``); no templating engine
is involved.

Ports are derived deterministically from the site identifier so regenerating
a site's files never moves it to new ports:

    base  = template_base_port + (trailing hex digits of site id % 1000)
    HTTPS = base + 1, MySQL = base + 2, Adminer = base + 3,
    Mailpit = base + 4, Mailpit SMTP = base + 5
"""

from __future__ import annotations

import hashlib
import string
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from pressbox import __version__
from pressbox.core.exceptions import TemplateError
from pressbox.core.logging import get_logger

if TYPE_CHECKING:
    from pressbox.core.config import Settings
    from pressbox.services.environment import DockerOptions

logger = get_logger(__name__)

TEMPLATES_PATH = Path(__file__).resolve().parent.parent / "templates"

DEFAULT_MARIADB_VERSION = "10.6"

XDEBUG_CONFIG = """

; Xdebug Configuration
[xdebug]
zend_extension=xdebug
xdebug.mode=debug
xdebug.start_with_request=yes
xdebug.client_host=host.docker.internal
xdebug.client_port=9003
xdebug.log=/var/log/php/xdebug.log
xdebug.idekey=VSCODE
"""

GENERIC_PHP_CONFIG = """; PHP Configuration for WordPress Development
; Generic configuration for PHP ${PHP_VERSION}

[PHP]
engine = On
short_open_tag = Off
expose_php = Off
max_execution_time = ${PHP_MAX_EXECUTION_TIME}
max_input_time = ${PHP_MAX_EXECUTION_TIME}
memory_limit = ${PHP_MEMORY_LIMIT}

error_reporting = E_ALL & ~E_DEPRECATED & ~E_STRICT
display_errors = On
display_startup_errors = On
log_errors = On
error_log = /var/log/php/error.log

post_max_size = 256M
file_uploads = On
upload_max_filesize = 256M
max_file_uploads = 20

allow_url_fopen = On
allow_url_include = Off
default_socket_timeout = 60

date.timezone = UTC

[opcache]
opcache.enable = 1
opcache.enable_cli = 1
opcache.memory_consumption = 128
opcache.interned_strings_buffer = 8
opcache.max_accelerated_files = 4000
opcache.revalidate_freq = 2
opcache.validate_timestamps = 1

[mail function]
SMTP = localhost
smtp_port = 1025
"""


@dataclass(frozen=True, slots=True)
class ComposeTemplateConfig:
    """Option set consumed by template generation."""

    web_server: str = "nginx"
    php_version: str = "8.2"
    database: str = "mysql"
    mysql_version: str = "8.0"
    ssl: bool = False
    xdebug: bool = False
    mailpit: bool = True

    @classmethod
    def from_options(cls, options: DockerOptions, php_version: str) -> ComposeTemplateConfig:
        web_server = "nginx" if options.nginx_enabled else options.web_server
        mysql_version = (
            options.mysql_version if options.database == "mysql" else DEFAULT_MARIADB_VERSION
        )
        return cls(
            web_server=web_server,
            php_version=php_version,
            database=options.database,
            mysql_version=mysql_version,
            ssl=options.ssl_enabled,
            xdebug=options.xdebug,
            mailpit=options.mailpit,
        )

    @property
    def template_name(self) -> str:
        return f"{self.web_server}-{self.database}"


@dataclass(frozen=True, slots=True)
class SitePorts:
    http: int
    https: int
    mysql: int
    adminer: int
    mailpit: int
    mailpit_smtp: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class GeneratedFiles:
    """Paths written by ``TemplateManager.save_generated_files``."""

    compose: Path
    env: Path
    server_config: Path
    php_config: Path
    mysql_config: Path
    override: Path | None = None


def _hex_prefix(text: str) -> str:
    """Leading run of hex digits in ``text``."""
    digits = []
    for char in text:
        if char not in string.hexdigits:
            break
        digits.append(char)
    return "".join(digits)


def derive_ports(site_id: str, base_port: int = 8000) -> SitePorts:
    """Derive a site's host ports from the trailing hex digits of its identifier.

    The last three characters of ``site_id`` are read as hex (up to the first
    non-hex character). Identifiers whose tail has no hex digits fall back to
    the tail of the identifier's SHA-1 digest.

    Args:
        site_id: Site identifier
        base_port: Fixed base port added to the derived offset

    Returns:
        SitePorts with HTTPS/MySQL/Adminer/Mailpit/Mailpit-SMTP at HTTP + 1..5
    """
    if not site_id:
        raise TemplateError("Cannot derive ports for an empty site identifier")

    tail = _hex_prefix(site_id[-3:])
    if not tail:
        tail = hashlib.sha1(site_id.encode("utf-8")).hexdigest()[-3:]  # noqa: S324

    http = base_port + int(tail, 16) % 1000
    return SitePorts(
        http=http,
        https=http + 1,
        mysql=http + 2,
        adminer=http + 3,
        mailpit=http + 4,
        mailpit_smtp=http + 5,
    )


def render_template(template: str, variables: dict[str, str]) -> str:
    """Replace every ``${KEY}`` occurrence with its value.

    One pass of literal substitutions; placeholders with no matching key are
    left untouched.
    """
    result = template
    for key, value in variables.items():
        result = result.replace("${" + key + "}", value)
    return result


class TemplateManager:
    """Generates and saves the configuration artifacts for Docker sites."""

    def __init__(self, settings: Settings, templates_path: Path | None = None) -> None:
        self._settings = settings
        self._templates_path = templates_path or TEMPLATES_PATH

    @property
    def templates_path(self) -> Path:
        return self._templates_path

    def site_path(self, site_id: str) -> Path:
        return self._settings.docker_sites_path / site_id

    def config_path(self, site_id: str) -> Path:
        return self._settings.configs_path / site_id

    def _read(self, *parts: str) -> str:
        path = self._templates_path.joinpath(*parts)
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise TemplateError(
                f"Template not found: {'/'.join(parts)}",
                details={"path": str(path), "error": str(e)},
            ) from e

    def generate_environment(self, site_id: str, config: ComposeTemplateConfig) -> dict[str, str]:
        """Build the substitution variables for a site."""
        settings = self._settings
        ports = derive_ports(site_id, settings.template_base_port)
        domain_label = "".join(char for char in site_id if char.isalnum()) or site_id

        return {
            "SITE_ID": site_id,
            "SITE_DOMAIN": f"{domain_label}.local",
            "SITE_PATH": str(self.site_path(site_id)),
            "CONFIG_PATH": str(self.config_path(site_id)),
            "SSL_PATH": str(settings.ssl_path / site_id),
            "LOGS_PATH": str(settings.logs_path / site_id),
            "DATA_PATH": str(settings.data_path / site_id),
            "HTTP_PORT": str(ports.http),
            "HTTPS_PORT": str(ports.https),
            "MYSQL_PORT": str(ports.mysql),
            "ADMINER_PORT": str(ports.adminer),
            "MAILPIT_PORT": str(ports.mailpit),
            "MAILPIT_SMTP_PORT": str(ports.mailpit_smtp),
            "PHP_VERSION": config.php_version,
            "MYSQL_VERSION": config.mysql_version,
            "DB_NAME": "wordpress",
            "DB_USER": "wp_user",
            "DB_PASSWORD": "wp_password",  # noqa: S105 - local development stack
            "DB_ROOT_PASSWORD": "root_password",  # noqa: S105
            "XDEBUG_MODE": "debug" if config.xdebug else "off",
            "PHP_MEMORY_LIMIT": "512M",
            "PHP_MAX_EXECUTION_TIME": "300",
            "PRESSBOX_VERSION": __version__,
        }

    def generate_compose(self, site_id: str, config: ComposeTemplateConfig) -> str:
        template = self._read("docker-compose", f"{config.template_name}.yml")
        return render_template(template, self.generate_environment(site_id, config))

    def generate_env_file(self, site_id: str, config: ComposeTemplateConfig) -> str:
        env = self.generate_environment(site_id, config)
        return "\n".join(f"{key}={value}" for key, value in env.items()) + "\n"

    def generate_server_config(self, site_id: str, config: ComposeTemplateConfig) -> str:
        template = self._read("configs", config.web_server, "default.conf")
        return render_template(template, self.generate_environment(site_id, config))

    def generate_php_config(self, site_id: str, config: ComposeTemplateConfig) -> str:
        """Render the version-specific PHP config, or the generic one if none exists.

        The Xdebug block is appended when Xdebug is enabled.
        """
        env = self.generate_environment(site_id, config)
        try:
            template = self._read("configs", "php", f"php{config.php_version}.ini")
        except TemplateError:
            logger.info(
                f"No specific PHP {config.php_version} template found, using generic template",
                extra={"site_id": site_id, "php_version": config.php_version},
            )
            template = GENERIC_PHP_CONFIG

        rendered = render_template(template, env)
        if config.xdebug:
            rendered += XDEBUG_CONFIG
        return rendered

    def generate_mysql_config(self, site_id: str, config: ComposeTemplateConfig) -> str:
        template = self._read("configs", "mysql", "custom.cnf")
        return render_template(template, self.generate_environment(site_id, config))

    def generate_override(
        self,
        site_id: str,
        volumes: list[str],
        environment: dict[str, str],
    ) -> str | None:
        """Render docker-compose.override.yml for extra volumes/environment.

        Returns:
            YAML text, or None when there is nothing to override.
        """
        if not volumes and not environment:
            return None

        service: dict[str, object] = {}
        if volumes:
            service["volumes"] = list(volumes)
        if environment:
            service["environment"] = dict(environment)

        override_doc = {"services": {"wordpress": service}}
        header = f"# Generated by PressBox for {site_id}; merged over docker-compose.yml\n"
        return header + yaml.dump(override_doc, default_flow_style=False, sort_keys=False)

    def list_available_templates(self) -> list[str]:
        template_dir = self._templates_path / "docker-compose"
        try:
            return sorted(path.stem for path in template_dir.glob("*.yml"))
        except OSError as e:
            logger.error(f"Failed to list templates: {e}")
            return []

    def validate_template(self, template_name: str) -> bool:
        return (self._templates_path / "docker-compose" / f"{template_name}.yml").is_file()

    def save_generated_files(
        self,
        site_id: str,
        config: ComposeTemplateConfig,
        *,
        volumes: list[str] | None = None,
        environment: dict[str, str] | None = None,
    ) -> GeneratedFiles:
        """Generate every artifact for a site and write it to disk.

        Raises:
            TemplateError: If a template is missing or a file cannot be written
        """
        if not self.validate_template(config.template_name):
            raise TemplateError(
                f"Unknown template combination: {config.template_name}",
                details={"available": self.list_available_templates()},
            )

        site_path = self.site_path(site_id)
        config_path = self.config_path(site_id)

        # Render everything first so a bad template leaves nothing half-written
        compose = self.generate_compose(site_id, config)
        env_file = self.generate_env_file(site_id, config)
        server_config = self.generate_server_config(site_id, config)
        php_config = self.generate_php_config(site_id, config)
        mysql_config = self.generate_mysql_config(site_id, config)
        override = self.generate_override(site_id, volumes or [], environment or {})

        try:
            for directory in (
                site_path / "wordpress",
                config_path / config.web_server,
                config_path / "php",
                config_path / "mysql",
                self._settings.ssl_path / site_id,
                self._settings.logs_path / site_id,
            ):
                directory.mkdir(parents=True, exist_ok=True)

            files = GeneratedFiles(
                compose=site_path / "docker-compose.yml",
                env=site_path / ".env",
                server_config=config_path / config.web_server / "site.conf",
                php_config=config_path / "php" / "php.ini",
                mysql_config=config_path / "mysql" / "custom.cnf",
                override=site_path / "docker-compose.override.yml" if override else None,
            )
            files.compose.write_text(compose, encoding="utf-8")
            files.env.write_text(env_file, encoding="utf-8")
            files.server_config.write_text(server_config, encoding="utf-8")
            files.php_config.write_text(php_config, encoding="utf-8")
            files.mysql_config.write_text(mysql_config, encoding="utf-8")
            if files.override is not None and override is not None:
                files.override.write_text(override, encoding="utf-8")
        except OSError as e:
            raise TemplateError(
                f"Failed to save generated files: {e}",
                details={"site_id": site_id},
            ) from e

        logger.info(
            f"Generated configuration files for site {site_id}",
            extra={"site_id": site_id, "template": config.template_name},
        )
        return files
