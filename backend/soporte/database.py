"""
Soporte API — Database Session Management
===========================================

What:  Async SQLAlchemy engine, session factory, and FastAPI dependency.
Why:   Centralizes all database connection logic in one place.
How:   Creates an async engine against the hosted Postgres (asyncpg driver),
       provides a session dependency that commits on success and rolls back
       on error.
When:  Engine is created at module import; sessions are created per-request.

Error codes:
    Postgres reports constraint failures through SQLSTATE codes. The asyncpg
    adapter exposes them as `sqlstate` (psycopg as `pgcode`) on the wrapped
    driver exception; `sqlstate_of()` reads whichever is present.
"""

from typing import AsyncGenerator, Optional

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from soporte.config import settings

# SQLSTATE codes the service reacts to
UNIQUE_VIOLATION = "23505"
CHECK_VIOLATION = "23514"
NOT_NULL_VIOLATION = "23502"
UNDEFINED_TABLE = "42P01"


engine = create_async_engine(
    settings.database_url,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=settings.db_pool_pre_ping,
    pool_recycle=3600,
    echo=settings.log_level == "DEBUG",
)

# expire_on_commit=False: attributes stay readable after commit
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models (shared metadata for Alembic)."""
    pass


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the factory
        2. Yields it to the route handler
        3. On success: commits the transaction
        4. On error: rolls back the transaction
        5. Always: closes the session (returns connection to pool)
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def sqlstate_of(exc: BaseException) -> Optional[str]:
    """
    Extract the Postgres SQLSTATE code from a SQLAlchemy/driver exception.

    Returns None for errors that carry no code (e.g., connection refused).
    """
    orig = exc.orig if isinstance(exc, DBAPIError) else exc
    for attr in ("sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if code:
            return str(code)
    return None


async def dispose_engine() -> None:
    """Gracefully closes all connections in the pool (called on shutdown)."""
    await engine.dispose()
