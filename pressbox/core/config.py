"""Application configuration using Pydantic Settings."""

import logging
import os
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pressbox.services.environment.enums import Backend


class Settings(BaseSettings):
    """Application settings loaded from environment variables (prefix ``PRESSBOX_``)."""

    model_config = SettingsConfigDict(
        env_prefix="PRESSBOX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "PressBox"
    app_version: str = "0.1.0"

    # Filesystem layout
    home: str = Field(
        default=str(Path.home() / "PressBox"),
        description="Root directory for sites, generated configs, SSL material and logs",
    )

    # Local backend settings
    php_binaries: list[str] = Field(
        default=["php", "php.exe"],
        description="PHP executables tried in order when detecting a local interpreter",
    )
    local_base_port: int = Field(
        default=8080,
        ge=1024,
        le=65535,
        description="First port tried for the PHP built-in server",
    )
    php_server_startup_delay: float = Field(
        default=1.0,
        ge=0.0,
        le=30.0,
        description="Seconds to wait for the PHP built-in server to bind before reporting it running",
    )
    wordpress_download: bool = Field(
        default=True,
        description="Download WordPress core on local site creation; a minimal skeleton is used otherwise",
    )
    wordpress_download_url: str = Field(
        default="https://wordpress.org/{archive}.tar.gz",
        description='Download URL; {archive} is "latest" or "wordpress-<version>"',
        pattern=r"^https?://.*\{archive\}.*",
    )
    wordpress_download_timeout: float = Field(default=120.0, ge=1.0, le=3600.0)

    # Docker backend settings
    docker_host: str | None = Field(
        default=None,
        description="Docker host URL (e.g. unix:///var/run/docker.sock). Uses DOCKER_HOST when unset",
    )
    compose_command: list[str] = Field(
        default=["docker", "compose"],
        description="Command used to drive Docker Compose",
    )
    template_base_port: int = Field(
        default=8000,
        ge=1024,
        le=64000,
        description="Base port for per-site Docker port derivation",
    )

    # Timeouts
    subprocess_timeout: float = Field(
        default=120.0,
        ge=1.0,
        le=3600.0,
        description="Maximum seconds a compose or PHP subprocess may run before being killed",
    )
    probe_timeout: float = Field(
        default=10.0,
        ge=0.5,
        le=120.0,
        description="Maximum seconds a capability probe may take",
    )

    default_backend: Backend = Field(
        default=Backend.LOCAL,
        description="Preferred backend before initialize() has probed capabilities",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_file_path: str = Field(
        default="",
        description="Rotating log file location; empty means <home>/logs/pressbox.log",
    )
    log_file_max_bytes: int = Field(default=10 * 1024 * 1024, ge=1024)
    log_file_backup_count: int = Field(default=5, ge=0)
    log_json: bool = Field(
        default=False,
        description="Write the log file as JSON lines instead of plain text",
    )

    @property
    def sites_path(self) -> Path:
        return Path(self.home) / "sites"

    @property
    def docker_sites_path(self) -> Path:
        return Path(self.home) / "docker-sites"

    @property
    def configs_path(self) -> Path:
        return Path(self.home) / "configs"

    @property
    def ssl_path(self) -> Path:
        return Path(self.home) / "ssl"

    @property
    def logs_path(self) -> Path:
        return Path(self.home) / "logs"

    @property
    def data_path(self) -> Path:
        return Path(self.home) / "data"

    @model_validator(mode="after")
    def resolve_log_file_path(self) -> "Settings":
        """Place the log file under ``home`` unless set, and create its directory."""
        if not self.log_file_path:
            self.log_file_path = str(self.logs_path / "pressbox.log")
        Path(self.log_file_path).parent.mkdir(parents=True, exist_ok=True)
        return self

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalise and validate the log level name."""
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator("compose_command", "php_binaries")
    @classmethod
    def validate_non_empty(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("Command list must not be empty")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    runtime_env_path = os.getenv("PRESSBOX_RUNTIME_ENV_PATH", "./data/runtime.env")
    return Settings(_env_file=(".env", runtime_env_path))
