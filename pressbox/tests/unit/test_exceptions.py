"""Unit tests for the exception hierarchy."""

import pytest

from pressbox.core.exceptions import (
    BackendError,
    ComposeCommandError,
    DockerUnavailableError,
    EnvironmentUnavailableError,
    ExternalServiceError,
    InvalidInputError,
    MigrationError,
    MigrationNotSupportedError,
    NotFoundError,
    PHPServerError,
    PressBoxError,
    SiteCreationError,
    SiteNotFoundError,
    TemplateError,
    ValidationError,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        ("exc_class", "parent"),
        [
            (InvalidInputError, ValidationError),
            (SiteNotFoundError, NotFoundError),
            (BackendError, ExternalServiceError),
            (DockerUnavailableError, BackendError),
            (ComposeCommandError, BackendError),
            (PHPServerError, BackendError),
            (MigrationNotSupportedError, MigrationError),
            (SiteCreationError, PressBoxError),
            (TemplateError, PressBoxError),
        ],
    )
    def test_subclassing(self, exc_class, parent):
        assert issubclass(exc_class, parent)

    def test_defaults(self):
        error = TemplateError()
        assert error.message == "Template generation failed"
        assert error.to_dict() == {"code": "TEMPLATE_ERROR", "message": "Template generation failed"}


class TestMessages:
    """Tests for messages and structured details."""

    def test_site_not_found_names_environment(self):
        error = SiteNotFoundError("blog", environment="docker")

        assert str(error) == "Site not found in docker environment: blog"
        assert error.details == {"site_name": "blog", "environment": "docker"}

    def test_site_creation_error_names_both_environments(self):
        error = SiteCreationError(
            "blog",
            primary="docker",
            primary_error=RuntimeError("daemon down"),
            fallback="local",
            fallback_error=RuntimeError("php missing"),
        )

        assert str(error) == (
            "Failed to create site 'blog' in both environments: "
            "docker: daemon down; local: php missing"
        )
        assert error.details["fallback_error"] == "php missing"
        assert error.error_code == "SITE_CREATION_FAILED"

    def test_environment_unavailable(self):
        error = EnvironmentUnavailableError("docker")
        assert str(error) == "docker environment is not available"
        assert error.environment == "docker"

    def test_compose_error_truncates_output(self):
        error = ComposeCommandError(
            "up failed",
            command=["docker", "compose", "up"],
            returncode=1,
            stderr="x" * 1000,
        )

        assert error.returncode == 1
        assert error.details["command"] == "docker compose up"
        assert len(error.details["stderr"]) == 500
        assert error.details["environment"] == "docker"

    def test_backend_specific_errors_carry_environment(self):
        assert DockerUnavailableError().environment == "docker"
        assert PHPServerError("boom").environment == "local"

    def test_migration_error_details(self):
        error = MigrationError("copy failed", site_name="blog", source="local", stage="import")

        assert error.stage == "import"
        assert error.details == {"site_name": "blog", "source": "local", "stage": "import"}

    def test_invalid_input_truncates_value(self):
        error = InvalidInputError("bad", field="name", value="v" * 150)

        assert error.details["field"] == "name"
        assert len(error.details["value"]) == 100
