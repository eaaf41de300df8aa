"""Async SQLAlchemy engine and session factory.

Uses psycopg3 which supports both sync and async with the same
``postgresql+psycopg://`` URL.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from preview_studio.orchestrator.db.tables import Base


def create_engine(database_url: str, **kwargs: object) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    The orchestrator issues a handful of short statements per PR event, so
    the pool stays small:

    - **pool_size=5**: baseline connections kept open.
    - **max_overflow=5**: burst capacity for webhook storms.
    - **pool_pre_ping=True**: survive PG restarts and idle disconnects.

    All defaults can be overridden via *kwargs*.  Sizing is skipped when a
    custom ``poolclass`` is passed (e.g. ``NullPool`` in tests).
    """
    defaults: dict[str, object] = {"echo": False, "pool_pre_ping": True}
    if "poolclass" not in kwargs:
        defaults.update(pool_size=5, max_overflow=5, pool_recycle=3600)
    defaults.update(kwargs)
    return create_async_engine(database_url, **defaults)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to *engine*.

    ``expire_on_commit=False`` so rows stay readable after commit without
    implicit IO.
    """
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create missing tables and indexes.  Safe to call on every startup."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
