"""Database engine and session factory construction for catalogsync.

Engines and session factories are built explicitly and handed to the
services that need them; nothing here keeps process-wide state.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from catalogsync.config import DBConfig
from catalogsync.db.models import Base


def create_engine(db_config: DBConfig) -> AsyncEngine:
    """Create an async engine for the configured database.

    Args:
        db_config: Database configuration

    Returns:
        AsyncEngine: SQLAlchemy async engine
    """
    engine_kwargs: dict = {"echo": db_config.echo}

    # SQLite doesn't support connection pooling parameters
    if "sqlite" not in db_config.url.lower():
        engine_kwargs.update({
            "pool_size": db_config.pool_size,
            "max_overflow": db_config.pool_max_overflow,
            "pool_timeout": db_config.pool_timeout,
            "pool_pre_ping": True,  # Verify connections before using
            "pool_recycle": 3600,  # Recycle connections after 1 hour
        })

    return create_async_engine(db_config.url, **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the session factory shared by the pipeline services."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Don't expire objects after commit
    )


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Transactional session scope.

    Usage:
        async with session_scope(factory) as session:
            session.add(model)

    Commits on success, rolls back and re-raises on any exception.
    """
    session = session_factory()

    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def init_db(engine: AsyncEngine, drop: bool = False) -> None:
    """Create all tables.

    Note: For production, use migrations instead.
    """
    async with engine.begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
