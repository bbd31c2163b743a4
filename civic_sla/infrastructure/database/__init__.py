"""
Database Infrastructure
=======================

Async engine and the session factory shared by the repositories.

Uses SQLAlchemy 2.0 with asyncpg for async PostgreSQL operations.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from civic_sla.config import settings


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    SQLAlchemy 2.0 style using DeclarativeBase.
    All models inherit from this class.
    """
    pass


# Global engine and session maker
_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Get or create the database engine.

    Returns:
        AsyncEngine: SQLAlchemy async engine

    Raises:
        RuntimeError: If engine has not been initialized
    """
    global _engine
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


def init_database() -> AsyncEngine:
    """
    Initialize the database engine and session maker.

    Should be called during application startup.

    Returns:
        AsyncEngine: The initialized engine
    """
    global _engine, _session_maker

    # asyncpg takes ssl= rather than libpq's sslmode=
    database_url = settings.database_url.replace("sslmode=", "ssl=")

    _engine = create_async_engine(
        database_url,
        echo=settings.debug,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,  # Verify connections before using
    )

    _session_maker = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Prevent lazy loading after commit
        autocommit=False,
        autoflush=False,
    )

    return _engine


async def close_database() -> None:
    """
    Close the database engine and dispose of connections.

    Should be called during application shutdown.
    """
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """
    Session factory for repositories.

    Repositories open one short-lived session per call so that each
    write commits independently of any batch it belongs to.

    Raises:
        RuntimeError: If the database has not been initialized
    """
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_maker


async def create_tables() -> None:
    """
    Create all database tables.

    This should only be used for development/testing.
    Production should use migrations (Alembic).
    """
    # Register models on Base.metadata
    import civic_sla.issues.infrastructure.models  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
