"""SQLAlchemy 2.x async engine and session factory for the alert store.

Every evaluation cycle runs in one session and transaction. Acquiring a
pooled connection and running each statement are both bounded by the
evaluation timeout, so an unreachable or locked database surfaces as a
failed cycle rather than a request that hangs.
"""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from rainalert.core.config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass


def create_engine(
    settings: Settings,
) -> tuple[
    AsyncEngine,
    async_sessionmaker[AsyncSession],
]:
    """Create the alert store engine and session factory.

    Sessions keep loaded objects usable after commit so that alerts
    recorded in a cycle can still be fanned out once it has committed.

    Returns:
        Tuple of (engine, async_session_factory).
    """
    timeout = settings.evaluation_timeout_seconds
    engine = create_async_engine(
        settings.database_url or "",
        echo=settings.debug,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=timeout,
        pool_pre_ping=True,
        pool_recycle=300,
        connect_args={"command_timeout": timeout},
    )

    session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    return engine, session_factory


async def check_database(session_factory: async_sessionmaker[AsyncSession]) -> bool:
    """Return True if the alert store database answers a trivial query."""
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, ConnectionError, OSError):
        logger.warning("Database health check failed")
        return False
    return True
