"""Alembic environment for the RainAlert alert store.

Supports both offline (SQL generation) and online (direct DB) migration modes.
The database URL comes from DATABASE_URL, falling back to application
settings, so alembic.ini never carries credentials.
"""

from __future__ import annotations

import asyncio
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

import rainalert.core.models  # noqa: F401  registers models with Base.metadata
from rainalert.core.config import get_settings
from rainalert.core.database import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _database_url() -> str:
    url = os.environ.get("DATABASE_URL") or get_settings().database_url or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("No database URL configured for migrations")
    return url


def _configure(**kwargs: object) -> None:
    # compare_type picks up changes to the alert level and status enums.
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)


def run_migrations_offline() -> None:
    """Generate SQL scripts without connecting to the database."""
    _configure(url=_database_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    _configure(connection=connection)

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Run migrations in 'online' mode using an async engine."""
    connectable = create_async_engine(_database_url(), poolclass=pool.NullPool)

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
