"""
Soporte API — FastAPI Application Factory
===========================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes middleware registration, route mounting, error rendering
       and lifecycle management in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   `python -m soporte` (or `uvicorn soporte.main:app`).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                       FastAPI App                        │
    │                                                          │
    │  Middleware Chain:                                       │
    │  ┌──────────┐ ┌────────────┐ ┌──────────┐ ┌──────┐       │
    │  │  Req ID  │→│ Access Log │→│ Body cap │→│ CORS │       │
    │  └──────────┘ └────────────┘ └──────────┘ └──────┘       │
    │                                                          │
    │  Routes:                                                 │
    │  ┌──────┐ ┌─────────────┐ ┌────────────────┐ ┌─────────┐ │
    │  │ GET /│ │ /api/health │ │ /api/computad. │ │/uploads │ │
    │  └──────┘ └─────────────┘ └────────────────┘ └─────────┘ │
    │                             ▲ readiness gate             │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Validate configuration (logged, not fatal: local mode needs no keys)
    3. Verify the `computadores` table (retried); a missing table aborts startup
    4. Open the readiness gate

    Shutdown:
    1. Dispose database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from soporte import __version__
from soporte.bootstrap import DatabaseReadiness, verify_database
from soporte.config import settings
from soporte.database import dispose_engine, engine
from soporte.exceptions import (
    ConflictError,
    DatabaseError,
    FileStorageError,
    NotFoundError,
    ObjectStorageError,
    SoporteError,
    UpstreamUnavailableError,
    ValidationError,
)
from soporte.middleware.body_limit import BodySizeLimitMiddleware
from soporte.middleware.logging import RequestLoggingMiddleware
from soporte.middleware.request_id import RequestIDLogFilter, RequestIDMiddleware, request_id_var
from soporte.routes import computadores, health, root, uploads
from soporte.routes.root import AVAILABLE_ENDPOINTS
from soporte.services.attachment_resolver import build_attachment_resolver

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: 2024-06-10T09:15:02 [INFO] [3f9c1a2b] soporte.services.computador_service: ...
    Called once at startup, before any other initialization.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIDLogFilter())
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] [%(request_id)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[handler],
        force=True,
    )

    # Per-request chatter from libraries; our access log covers requests
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup verifies the database before the gate opens; any exception
    raised here propagates to uvicorn, which aborts startup.
    """
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Soporte API %s starting up (STORAGE_MODE=%s)", __version__, settings.storage_mode)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))
        logger.error("Images stored in Supabase Storage will not resolve until this is fixed.")

    attachments = app.state.attachments
    if attachments.local_store is not None:
        logger.info("Uploads directory: %s", attachments.local_store.root)
    if attachments.remote_store is not None and attachments.remote_store.configured:
        logger.info("Supabase Storage bucket: %s", attachments.remote_store.bucket)

    await verify_database(engine, app.state.readiness, settings)

    logger.info("Server ready at http://%s:%d", settings.host, settings.port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Soporte API shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(error: str, message: str, details=None) -> dict:
    body = {"error": error, "message": message, "request_id": request_id_var.get("")}
    if details:
        body["details"] = details
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to status codes and the error envelope.

    Handler table:
        ValidationError           → 400 validation_error
        ConflictError             → 400 conflict
        NotFoundError             → 404 not_found
        UpstreamUnavailableError  → 500 database_unavailable
        DatabaseError             → 500 database_error (driver details included)
        File/ObjectStorageError   → 500 server_error
        SoporteError (base)       → 500 server_error
        unknown route             → 404 with the endpoint list
        Exception (fallback)      → 500 internal_server_error
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("Validation error: %s %s", exc.message, exc.context)
        return JSONResponse(
            status_code=400,
            content=_error_body("validation_error", exc.message, exc.context),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        """Malformed JSON or wrongly typed values in the body/path/query."""
        errors = [
            {"loc": list(err.get("loc", [])), "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=_error_body("validation_error", "Solicitud inválida", {"errors": errors}),
        )

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        logger.warning("Conflict: %s", exc.message)
        return JSONResponse(
            status_code=400,
            content=_error_body("conflict", exc.message, exc.context),
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(
            status_code=404,
            content=_error_body("not_found", exc.message),
        )

    @app.exception_handler(UpstreamUnavailableError)
    async def handle_upstream_unavailable(request: Request, exc: UpstreamUnavailableError):
        logger.error("Request refused: database not ready")
        return JSONResponse(
            status_code=500,
            content=_error_body("database_unavailable", exc.message, exc.context),
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error("Database error: %s | Context: %s", exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=_error_body("database_error", exc.message, exc.context),
        )

    @app.exception_handler(FileStorageError)
    @app.exception_handler(ObjectStorageError)
    async def handle_storage_error(request: Request, exc: SoporteError):
        logger.error("Storage error: %s | Context: %s", exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", exc.message),
        )

    @app.exception_handler(SoporteError)
    async def handle_soporte_error(request: Request, exc: SoporteError):
        logger.error("Unhandled application error: %s", exc.message)
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", exc.message),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse(
                status_code=404,
                content={
                    "error": "Ruta no encontrada",
                    "path": request.url.path,
                    "method": request.method,
                    "availableEndpoints": AVAILABLE_ENDPOINTS,
                },
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body("http_error", str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Stack trace goes to the log only, never to the client."""
        logger.error("Unexpected error: %s", str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=_error_body("internal_server_error", "Error interno del servidor"),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """
    Assemble the application.

    State:
        app.state.readiness    DatabaseReadiness, opened by the lifespan
        app.state.attachments  AttachmentResolver for the configured mode
    """
    app = FastAPI(
        title="Soporte API",
        description=(
            "Registro de soporte técnico de computadores: CRUD de equipos con "
            "imágenes en disco local, Supabase Storage o modo híbrido."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.readiness = DatabaseReadiness()
    app.state.attachments = build_attachment_resolver(settings)

    # Middleware executes in REVERSE order of addition:
    # RequestID → Logging → BodySizeLimit → GZip → CORS → route
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(BodySizeLimitMiddleware, max_body_size=settings.max_body_size)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(root.router)
    app.include_router(health.router)
    app.include_router(computadores.router)
    app.include_router(uploads.router)

    return app


# uvicorn expects `soporte.main:app` to be importable
app = create_app()
