"""Database configuration and session management."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from notification_engine.config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""


SessionFactory = async_sessionmaker[AsyncSession]


def create_database_engine(settings: Settings, **kwargs) -> AsyncEngine:
    """Create the async engine configured by ``DATABASE_URL``."""

    return create_async_engine(settings.database_url, pool_pre_ping=True, **kwargs)


def build_session_factory(engine: AsyncEngine) -> SessionFactory:
    return async_sessionmaker(engine, autoflush=False, expire_on_commit=False)


async def initialize_database(engine: AsyncEngine) -> None:
    """Ensure all ORM models have corresponding database tables."""

    from notification_engine.infrastructure import models  # noqa: F401  # ensure models are imported

    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all, checkfirst=True)
    logger.info("Database schema ready")


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield a database session bound to the application runtime."""

    session_factory: SessionFactory = request.app.state.runtime.session_factory
    async with session_factory() as session:
        yield session


__all__ = [
    "Base",
    "SessionFactory",
    "build_session_factory",
    "create_database_engine",
    "get_db",
    "initialize_database",
]
