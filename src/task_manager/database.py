"""Async connection pool for the task store using SQLAlchemy 2.0."""

import logging

from sqlalchemy import URL
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from task_manager.config import Settings


logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def build_database_url(settings: Settings) -> URL:
    """Build the connection URL from the DB_* settings.

    URL.create escapes credentials, so passwords containing '@' or '/' are safe.
    """
    return URL.create(
        drivername=settings.db_driver,
        username=settings.db_user or None,
        password=settings.db_password or None,
        host=settings.db_host,
        port=settings.db_port,
        database=settings.db_name,
    )


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the shared, bounded connection pool."""
    return create_async_engine(
        build_database_url(settings),
        echo=settings.db_echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=True,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create tables that do not exist yet."""
    from task_manager import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def close_db(engine: AsyncEngine) -> None:
    """Close database connections."""
    await engine.dispose()
