"""
Soporte API — Startup Verification & Readiness
================================================

What:  Confirms at startup that the `computadores` table is reachable and
       owns the readiness state that gates every record endpoint.
Why:   Without the table every request would fail with a confusing driver
       error; a closed gate answers a clear 500 "database unavailable".
How:   `verify_database()` counts rows in the table. Connection failures are
       retried with tenacity (exponential backoff + jitter); a missing table
       is unrecoverable and aborts startup.
Who:   Called from the lifespan in main.py; `require_database` is a FastAPI
       dependency attached to the record routers.

State:
    DatabaseReadiness lives on `app.state.readiness` and is handed to routes
    through dependency injection; nothing else mutates it.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from soporte.config import Settings
from soporte.database import UNDEFINED_TABLE, sqlstate_of
from soporte.exceptions import TableMissingError, UpstreamUnavailableError
from soporte.models.computador import Computador

logger = logging.getLogger(__name__)

TABLE_NAME = Computador.__tablename__

# Shown when the table is missing; the same schema ships as an Alembic revision
CREATE_TABLE_HINT = """
Create the table with the bundled migration:

    alembic upgrade head

or run the following SQL in the Supabase SQL editor:

CREATE TABLE IF NOT EXISTS computadores (
    id SERIAL PRIMARY KEY,
    equipo_id VARCHAR(100) UNIQUE NOT NULL,
    serial_number VARCHAR(100) NOT NULL,
    placa_ml VARCHAR(100),
    latitud DECIMAL(10, 8),
    longitud DECIMAL(11, 8),
    direccion_automatica TEXT,
    ubicacion_manual TEXT,
    responsable VARCHAR(200) NOT NULL,
    cargo VARCHAR(100) NOT NULL,
    estado VARCHAR(20) NOT NULL CHECK (estado IN ('operativo', 'mantenimiento', 'dañado')),
    windows_update VARCHAR(5) NOT NULL CHECK (windows_update IN ('si', 'no')),
    imagenes JSONB DEFAULT '[]'::jsonb,
    observaciones TEXT,
    problemas_detectados TEXT,
    fecha_revision TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    fecha_actualizacion TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    revisor VARCHAR(100)
);
"""


class DatabaseReadiness:
    """Whether the startup table check has succeeded."""

    def __init__(self) -> None:
        self._ready = False
        self.checked_at: Optional[datetime] = None
        self.error: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self._ready

    def mark_ready(self) -> None:
        self._ready = True
        self.error = None
        self.checked_at = datetime.now(timezone.utc)

    def mark_failed(self, error: str) -> None:
        self._ready = False
        self.error = error
        self.checked_at = datetime.now(timezone.utc)


async def count_rows(engine: AsyncEngine) -> int:
    """
    Row count of the table; doubles as the reachability probe.

    Raises:
        TableMissingError if the table does not exist
        DBAPIError / OSError on connection problems
    """
    try:
        async with engine.connect() as conn:
            result = await conn.execute(text(f"SELECT count(*) FROM {TABLE_NAME}"))
            return int(result.scalar() or 0)
    except DBAPIError as e:
        if sqlstate_of(e) == UNDEFINED_TABLE:
            raise TableMissingError(TABLE_NAME)
        raise


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, (DBAPIError, OSError)) and not isinstance(exc, TableMissingError)


async def verify_database(
    engine: AsyncEngine, readiness: DatabaseReadiness, settings: Settings
) -> int:
    """
    Run the startup table check and open the readiness gate.

    Returns:
        Number of rows currently in the table.

    Raises:
        TableMissingError: table does not exist (not retried)
        Exception: last connection error once retries are exhausted
    """
    retrying = AsyncRetrying(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(settings.startup_retry_attempts),
        wait=wait_exponential_jitter(
            initial=settings.startup_retry_min_wait,
            max=settings.startup_retry_max_wait,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )

    try:
        async for attempt in retrying:
            with attempt:
                total = await count_rows(engine)
    except TableMissingError as e:
        readiness.mark_failed(e.message)
        logger.error("Table '%s' does not exist.%s", TABLE_NAME, CREATE_TABLE_HINT)
        raise
    except Exception as e:
        readiness.mark_failed(str(e))
        logger.error("Database unreachable after %d attempts: %s", settings.startup_retry_attempts, e)
        raise

    readiness.mark_ready()
    logger.info("Database connected: table '%s' has %d rows", TABLE_NAME, total)
    return total


# ── FastAPI dependencies ──────────────────────────────────────────────────


def get_readiness(request: Request) -> DatabaseReadiness:
    return request.app.state.readiness


def require_database(request: Request) -> None:
    """
    Readiness gate for record endpoints.

    Raises:
        UpstreamUnavailableError until the startup check has succeeded.
    """
    if not get_readiness(request).ready:
        raise UpstreamUnavailableError()
