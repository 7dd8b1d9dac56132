"""
Database Configuration.

SQLAlchemy async engine and session management for the notification store.
The engine is created on first use, so importing this module never needs
database credentials.

Three ways to get a session:

    get_db_session()        FastAPI dependency; commits when the request succeeds
    session_scope(factory)  job processors and maintenance tasks; commits on exit
    factory()               plain session; the caller commits
"""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from modules.notifier.core.logging import get_logger

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def _create_engine() -> AsyncEngine:
    from modules.notifier.core.config import get_app_config, get_database_url

    db_config = get_app_config().database

    engine = create_async_engine(
        get_database_url(),
        pool_size=db_config.pool_size,
        max_overflow=db_config.max_overflow,
        pool_timeout=db_config.pool_timeout,
        pool_recycle=db_config.pool_recycle,
        pool_pre_ping=True,
        echo=db_config.echo,
        echo_pool=db_config.echo_pool,
    )
    logger.debug(
        "Database engine created",
        extra={"host": db_config.host, "database": db_config.name},
    )
    return engine


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = _create_engine()
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _async_session_factory


async def dispose_engine() -> None:
    """Close pooled connections. Called during shutdown."""
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.debug("Database engine disposed")
    _engine = None
    _async_session_factory = None


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Session that commits when the block exits cleanly and rolls back otherwise."""
    factory = session_factory or get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session dependency.

    Usage in endpoints:
        @router.get("/notifications")
        async def list_notifications(db: AsyncSession = Depends(get_db_session)):
            ...
    """
    async with session_scope() as session:
        yield session


async def ping(session_factory: async_sessionmaker[AsyncSession]) -> int:
    """Round-trip a SELECT 1. Returns the latency in milliseconds."""
    started = time.perf_counter()
    async with session_factory() as session:
        await session.execute(text("SELECT 1"))
    return int((time.perf_counter() - started) * 1000)


async def create_schema(engine: AsyncEngine | None = None) -> list[str]:
    """Create missing tables for every notifier model. Returns the table names."""
    import modules.notifier.models  # noqa: F401
    from modules.notifier.models.base import Base

    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return sorted(Base.metadata.tables)
