"""
Soporte API — Custom Exception Hierarchy
==========================================

What:  Application-specific exceptions for the different error scenarios.
Why:   Services raise typed errors; global handlers (registered in main.py)
       turn them into JSON envelopes with the right HTTP status code.
How:   Each exception carries a message and an optional context dict.

Exception Hierarchy:
    SoporteError (base)
    ├── ValidationError           → 400 (missing/invalid field)
    ├── ConflictError             → 400 (duplicate equipo_id)
    ├── NotFoundError             → 404
    ├── UpstreamUnavailableError  → 500 (readiness gate closed)
    ├── DatabaseError             → 500 (unclassified driver error)
    ├── FileStorageError          → 500 (local disk)
    ├── ObjectStorageError        → 500 (Supabase Storage)
    ├── AttachmentDecodeError     → never surfaced; the image is skipped
    └── TableMissingError         → startup abort
"""

from typing import Any, Dict, List, Optional


class SoporteError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional info; returned as `details` by the handlers
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(SoporteError):
    """
    Raised when client input fails validation.

    HTTP: 400 Bad Request

    Example response:
        {
            "error": "validation_error",
            "message": "Campos requeridos faltantes",
            "details": {"required": ["equipo_id", ...], "missing": ["cargo"]}
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class MissingFieldsError(ValidationError):
    """One or more required record fields are absent or blank."""

    def __init__(self, required: List[str], missing: List[str]):
        super().__init__(
            message="Campos requeridos faltantes",
            context={"required": list(required), "missing": list(missing)},
        )
        self.required = list(required)
        self.missing = list(missing)


class ConflictError(SoporteError):
    """
    Raised when a unique key already exists (duplicate equipo_id).

    HTTP: 400 Bad Request, kept at 400 because existing clients branch on it.
    """

    def __init__(
        self,
        message: str = "El ID del equipo ya existe",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx.setdefault("details", "El identificador del equipo debe ser único")
        super().__init__(message=message, context=ctx)


class NotFoundError(SoporteError):
    """
    Raised when a requested resource does not exist.

    HTTP: 404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class UpstreamUnavailableError(SoporteError):
    """
    Raised by the readiness gate before the startup table check succeeded.

    HTTP: 500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "Base de datos no disponible",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx.setdefault("details", "La base de datos no se ha inicializado correctamente")
        super().__init__(message=message, context=ctx)


class DatabaseError(SoporteError):
    """
    Raised when a database operation fails with an unclassified error.

    HTTP: 500 Internal Server Error

    The driver message and SQLSTATE travel in `context` and are returned as
    `details` for diagnostics.
    """

    def __init__(
        self,
        message: str = "Error interno del servidor",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class TableMissingError(DatabaseError):
    """The `computadores` table does not exist (SQLSTATE 42P01)."""

    def __init__(self, table: str = "computadores"):
        super().__init__(
            message=f"Table '{table}' does not exist",
            context={"table": table, "code": "42P01"},
        )
        self.table = table


class FileStorageError(SoporteError):
    """
    Raised when local file system operations fail.

    HTTP: 500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ObjectStorageError(SoporteError):
    """
    Raised when a Supabase Storage request fails.

    HTTP: 500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "Object storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context or {})


class AttachmentDecodeError(SoporteError):
    """
    Raised when an inline image payload is not a valid data URI.

    Handled inside the attachment resolver, which drops the image.
    """

    def __init__(
        self,
        message: str = "Formato base64 inválido",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
