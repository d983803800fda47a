"""
Alembic Migration Environment
===============================

What:  Migrations for the `computadores` table, run over the async engine.
How:   DATABASE_URL comes from soporte.config rather than alembic.ini.

Shared database:
    The Supabase Postgres database also holds tables this service does not
    own (auth, storage, other apps in `public`). `include_object` limits
    autogenerate to tables declared on `Base.metadata`, so a generated
    revision never drops or alters someone else's table.
"""

import asyncio
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config
from alembic import context

from soporte.config import settings
from soporte.database import Base

# Registers the table on Base.metadata
from soporte.models.computador import Computador  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# Percent-encoded passwords would otherwise be read as configparser interpolation
config.set_main_option("sqlalchemy.url", settings.database_url.replace("%", "%%"))


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    if type_ == "table":
        return name in target_metadata.tables
    table = getattr(obj, "table", None)
    if table is not None:
        return table.name in target_metadata.tables
    return True


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        include_object=include_object,
        compare_type=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit SQL to stdout without connecting (`alembic upgrade head --sql`)."""
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
