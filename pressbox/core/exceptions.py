"""PressBox error types.

Every error carries a human-readable ``message``, a stable ``error_code``
(printed by the CLI in ``--json`` mode) and a ``details`` dict for structured
logging. Messages name the environment(s) involved so a failure on one
backend can be told apart from a failure on the other.
"""

from __future__ import annotations

from typing import Any


def _with_details(kwargs: dict[str, Any], **fields: Any) -> dict[str, Any]:
    """Pop caller-supplied ``details`` from ``kwargs`` and add the non-empty ``fields``."""
    details: dict[str, Any] = dict(kwargs.pop("details", None) or {})
    details.update({key: value for key, value in fields.items() if value is not None})
    return details


class PressBoxError(Exception):
    """Root of the PressBox error hierarchy."""

    default_message: str = "PressBox operation failed"
    default_error_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str | None = None,
        *,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.error_code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


# Input
class ValidationError(PressBoxError):
    default_message = "Invalid request"
    default_error_code = "VALIDATION_ERROR"


class InvalidInputError(ValidationError):
    default_message = "Invalid value"
    default_error_code = "INVALID_INPUT"

    def __init__(
        self,
        message: str | None = None,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ) -> None:
        shown = None if value is None else str(value)[:100]
        details = _with_details(kwargs, field=field or None, value=shown, constraint=constraint or None)
        super().__init__(message, details=details, **kwargs)


class NotFoundError(PressBoxError):
    default_message = "Not found"
    default_error_code = "NOT_FOUND"


class SiteNotFoundError(NotFoundError):
    default_message = "Site not found"
    default_error_code = "SITE_NOT_FOUND"

    def __init__(self, site_name: str, *, environment: str | None = None, **kwargs: Any) -> None:
        self.site_name = site_name
        where = f" in {environment} environment" if environment else ""
        details = _with_details(kwargs, site_name=site_name, environment=environment or None)
        super().__init__(f"Site not found{where}: {site_name}", details=details, **kwargs)


# Backends
class ExternalServiceError(PressBoxError):
    default_message = "A tool PressBox depends on failed"
    default_error_code = "EXTERNAL_SERVICE_ERROR"


class BackendError(ExternalServiceError):
    """A backend adapter could not carry out a site operation."""

    default_message = "Backend operation failed"
    default_error_code = "BACKEND_ERROR"

    def __init__(
        self,
        message: str | None = None,
        *,
        environment: str | None = None,
        **kwargs: Any,
    ) -> None:
        self.environment = environment
        details = _with_details(kwargs, environment=environment or None)
        super().__init__(message, details=details, **kwargs)


class DockerUnavailableError(BackendError):
    default_message = (
        "Docker is not available. Please ensure Docker Desktop is installed and running."
    )
    default_error_code = "DOCKER_NOT_AVAILABLE"

    def __init__(self, message: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, environment="docker", **kwargs)


class ComposeCommandError(BackendError):
    """``docker compose`` exited non-zero or ran past its timeout.

    Only the last 500 characters of stdout/stderr are kept.
    """

    default_message = "Docker Compose command failed"
    default_error_code = "DOCKER_COMPOSE_ERROR"

    def __init__(
        self,
        message: str | None = None,
        *,
        command: list[str] | None = None,
        returncode: int | None = None,
        stdout: str | None = None,
        stderr: str | None = None,
        **kwargs: Any,
    ) -> None:
        self.returncode = returncode
        details = _with_details(
            kwargs,
            command=" ".join(command) if command else None,
            returncode=returncode,
            stdout=stdout[-500:] if stdout else None,
            stderr=stderr[-500:] if stderr else None,
        )
        super().__init__(message, environment="docker", details=details, **kwargs)


class PHPServerError(BackendError):
    default_message = "Local PHP server operation failed"
    default_error_code = "PHP_SERVER_ERROR"

    def __init__(self, message: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, environment="local", **kwargs)


# Orchestration
class SiteCreationError(PressBoxError):
    """Creation failed on the preferred backend and again on the fallback."""

    default_message = "Failed to create site in both environments"
    default_error_code = "SITE_CREATION_FAILED"

    def __init__(
        self,
        site_name: str,
        *,
        primary: str,
        primary_error: BaseException,
        fallback: str,
        fallback_error: BaseException,
    ) -> None:
        self.site_name = site_name
        self.primary_error = primary_error
        self.fallback_error = fallback_error
        super().__init__(
            f"Failed to create site '{site_name}' in both environments: "
            f"{primary}: {primary_error}; {fallback}: {fallback_error}",
            details={
                "site_name": site_name,
                "primary": primary,
                "primary_error": str(primary_error),
                "fallback": fallback,
                "fallback_error": str(fallback_error),
            },
        )


class EnvironmentUnavailableError(PressBoxError):
    default_message = "Environment is not available"
    default_error_code = "ENVIRONMENT_NOT_AVAILABLE"

    def __init__(self, environment: str, **kwargs: Any) -> None:
        self.environment = environment
        details = _with_details(kwargs, environment=environment)
        super().__init__(f"{environment} environment is not available", details=details, **kwargs)


class MigrationError(PressBoxError):
    """A migration stage failed; nothing was rolled back."""

    default_message = "Site migration failed"
    default_error_code = "MIGRATION_FAILED"

    def __init__(
        self,
        message: str | None = None,
        *,
        site_name: str | None = None,
        source: str | None = None,
        target: str | None = None,
        stage: str | None = None,
        **kwargs: Any,
    ) -> None:
        self.stage = stage
        details = _with_details(kwargs, site_name=site_name, source=source, target=target, stage=stage)
        super().__init__(message, details=details, **kwargs)


class MigrationNotSupportedError(MigrationError):
    default_message = "Site migration is not supported for this environment"
    default_error_code = "MIGRATION_NOT_SUPPORTED"


class TemplateError(PressBoxError):
    default_message = "Template generation failed"
    default_error_code = "TEMPLATE_ERROR"

