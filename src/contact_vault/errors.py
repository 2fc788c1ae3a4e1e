"""Error types for contact-vault and their HTTP translation.

Hierarchy:
- ContactVaultError          — base class, carries a human-readable message
  - NotFoundError            — a resource does not exist (HTTP 404)
    - RecordNotFoundError    — no contact with the requested ID
    - VersionNotFoundError   — no snapshot for (contact_id, version)
  - ValidationError          — request is well-formed but semantically invalid (HTTP 422)
  - SnapshotWriteFailed      — version snapshot could not be persisted (logged, never raised)
  - InvalidQuerySyntax       — reserved; the query compiler degrades instead of raising

Services raise these; the API layer never builds HTTPException for domain
failures. install_exception_handlers() registers the translation on an app.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class ContactVaultError(Exception):
    """Base class for all contact-vault domain errors.

    Args:
        message: Human-readable description of the failure.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ContactVaultError):
    """Raised when a requested resource does not exist.

    Args:
        resource: Resource type name, e.g. ``Contact``.
        resource_id: Identifier that was looked up.
    """

    def __init__(self, resource: str, resource_id: str) -> None:
        super().__init__(f"{resource} not found: {resource_id}")
        self.resource = resource
        self.resource_id = resource_id


class RecordNotFoundError(NotFoundError):
    """Raised when no contact exists with the requested ID."""

    def __init__(self, contact_id: Any) -> None:
        super().__init__(resource="Contact", resource_id=str(contact_id))


class VersionNotFoundError(NotFoundError):
    """Raised when a contact has no snapshot for the requested version."""

    def __init__(self, contact_id: Any, version: int) -> None:
        super().__init__(resource="ContactVersion", resource_id=f"{contact_id}:v{version}")
        self.version = version


class ValidationError(ContactVaultError):
    """Raised when input passes schema validation but is semantically invalid.

    Args:
        message: Human-readable description.
        field: Name of the offending field, if any.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class SnapshotWriteFailed(ContactVaultError):
    """A version snapshot could not be written.

    Built by the version store for logging only. Snapshot failures never
    abort the mutation that triggered them.
    """

    def __init__(self, contact_id: Any, version: int, cause: Exception) -> None:
        super().__init__(f"Snapshot write failed for {contact_id} v{version}: {cause}")
        self.contact_id = contact_id
        self.version = version
        self.cause = cause


class InvalidQuerySyntax(ContactVaultError):
    """Reserved for malformed search input. The compiler never raises it."""


async def _not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"error": f"{exc.resource} not found", "detail": exc.message},
    )


async def _validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"error": "Validation failed", "detail": exc.message, "field": exc.field},
    )


def install_exception_handlers(app: FastAPI) -> None:
    """Register domain error → HTTP response translation on an app.

    Args:
        app: The FastAPI application.
    """
    app.add_exception_handler(NotFoundError, _not_found_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ValidationError, _validation_handler)  # type: ignore[arg-type]
