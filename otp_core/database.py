"""
Database Module
===============
Async engine, session factory and unit-of-work helpers for the OTP store.
"""

from typing import AsyncGenerator, Optional
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    create_async_engine as sa_create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.orm import DeclarativeBase
from contextlib import asynccontextmanager
import structlog

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


# Global engine and session factory - initialized by create_async_engine()
_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def create_async_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_pre_ping: bool = True,
    echo: bool = False,
) -> AsyncEngine:
    """
    Create and configure the async database engine.

    Call this once during application startup.

    Args:
        database_url: Async connection string (postgresql+asyncpg://... or sqlite+aiosqlite://...)
        pool_size: Connection pool size (ignored for SQLite)
        max_overflow: Max overflow connections (ignored for SQLite)
        pool_pre_ping: Enable connection health checks
        echo: Log SQL statements

    Returns:
        Configured AsyncEngine instance
    """
    global _engine, _async_session_factory

    engine_kwargs = {"pool_pre_ping": pool_pre_ping, "echo": echo}
    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"timeout": 30}
    else:
        engine_kwargs.update(pool_size=pool_size, max_overflow=max_overflow)

    _engine = sa_create_async_engine(database_url, **engine_kwargs)

    if database_url.startswith("sqlite"):
        _use_explicit_sqlite_transactions(_engine)

    _async_session_factory = create_session_factory(_engine)

    logger.info("Database engine initialized", dialect=_engine.dialect.name)
    return _engine


def _use_explicit_sqlite_transactions(engine: AsyncEngine) -> None:
    """
    Let SQLAlchemy own BEGIN on SQLite.

    The driver's implicit transactions break SAVEPOINT; BEGIN IMMEDIATE also
    serializes writers instead of failing with "database is locked".
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by the OTP service for its units of work."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_engine() -> AsyncEngine:
    """Get the current database engine."""
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call create_async_engine() first.")
    return _engine


def AsyncSessionLocal() -> async_sessionmaker[AsyncSession]:
    """
    Get the session factory for creating database sessions.

    Usage:
        async with AsyncSessionLocal()() as session:
            ...
    """
    if _async_session_factory is None:
        raise RuntimeError("Database not initialized. Call create_async_engine() first.")
    return _async_session_factory


async def init_models(engine: Optional[AsyncEngine] = None) -> None:
    """Create the OTP tables if they are missing."""
    from . import models  # noqa: F401  (registers tables on Base.metadata)

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured")


@asynccontextmanager
async def get_session(
    factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for one unit of work.

    Commits on success and rolls back on exception.

    Usage:
        async with get_session() as db:
            result = await db.execute(...)
    """
    factory = factory or AsyncSessionLocal()

    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def close_engine() -> None:
    """Close the database engine. Call during application shutdown."""
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database engine closed")
