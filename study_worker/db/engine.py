# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# One async SQLAlchemy engine (asyncpg driver) per worker process. The pool
# is deliberately small: pool_size + max_overflow is the hard ceiling on
# concurrent connections this process can open, and it must stay below the
# database plan's max-connections limit.
#
# Lazy initialization: nothing connects (or even imports asyncpg) until the
# first call to get_async_engine(). Tests that never touch the database can
# import the whole package without a driver installed.
#
# SESSION LIFECYCLE (get_session):
#   create → yield → commit (or rollback on error) → close
# Each repository operation opens its own short session so a connection is
# held only for a single round-trip.
# =============================================================================

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from study_worker.config import settings

_async_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_async_engine() -> AsyncEngine:
    """Lazily create and cache the async SQLAlchemy engine."""
    global _async_engine
    if _async_engine is None:
        _async_engine = create_async_engine(
            settings.database_url,
            echo=settings.db_echo,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_pre_ping=True,
        )
    return _async_engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Lazily create and cache the session factory.

    expire_on_commit=False keeps loaded attributes readable after commit
    (e.g. reading a new artifact's id once the session has closed).
    """
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_async_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


@asynccontextmanager
async def get_session(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager yielding a session that commits on success.

    Usage:
        async with get_session() as session:
            await session.execute(update(FlashcardJob).where(...))
    """
    session_factory = factory or get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def dispose_engine() -> None:
    """Close every pooled connection. Safe to call when never connected."""
    global _async_engine, _session_factory
    if _async_engine is not None:
        await _async_engine.dispose()
    _async_engine = None
    _session_factory = None
