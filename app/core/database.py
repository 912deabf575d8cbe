"""
Inkhouse - Database session configuration.
Async SQLAlchemy engine and session factory shared by the routes,
the key authenticator and the rate limiter.
"""
import logging
from typing import AsyncGenerator, Optional

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class DatabaseNotConfiguredError(RuntimeError):
    """Raised when a session is requested before the engine exists."""


# Global engine and session factory
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def get_database_url(url: Optional[str] = None) -> str:
    """Get a database URL with an async driver."""
    url = url if url is not None else settings.DATABASE_URL
    if not url:
        raise DatabaseNotConfiguredError("DATABASE_URL is not set")

    # Convert postgres:// to postgresql:// for compatibility
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)

    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif url.startswith("sqlite://"):
        url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)

    return url


async def init_database(url: Optional[str] = None) -> None:
    """Create the engine and session factory."""
    global _engine, _session_factory

    database_url = get_database_url(url)
    _engine = create_async_engine(database_url, echo=settings.DEBUG, future=True)
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    logger.info(f"Database connection initialized ({_engine.dialect.name})")


async def create_tables() -> None:
    """Create all tables known to the declarative base."""
    # Registers every model on Base.metadata
    import app.models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_database() -> None:
    """Dispose of the engine."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        logger.info("Database connection closed")
    _engine = None
    _session_factory = None


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise DatabaseNotConfiguredError("Database not initialized")
    return _engine


def get_session_factory() -> async_sessionmaker:
    if _session_factory is None:
        raise DatabaseNotConfiguredError("Database not initialized")
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get async database session."""
    session_factory = get_session_factory()

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def check_database_health() -> bool:
    """Check if the database answers a trivial query."""
    if _engine is None:
        return False

    try:
        async with _engine.connect() as conn:
            await conn.execute(sa.text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False
