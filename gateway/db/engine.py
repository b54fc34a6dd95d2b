# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# Async SQLAlchemy engine (asyncpg driver for PostgreSQL).
#
# SESSION LIFECYCLE:
# Stores and services do not share a request-scoped session. They receive an
# async_sessionmaker and open one short session per operation, commit it,
# and close it. This keeps background writes (last-used timestamps, usage
# records) independent of the request that scheduled them.
#
# Engines are built by the application factory (gateway.main.create_app)
# from its Settings, so each app instance owns its pool. Building an engine
# does not connect; the first query does.
# =============================================================================

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from gateway.db.models import Base


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    Pool sizing only applies to server databases; SQLite uses its own pool.
    """
    kwargs: dict = {"echo": echo}
    if not database_url.startswith("sqlite"):
        kwargs.update(pool_size=5, max_overflow=10, pool_pre_ping=True)
    return create_async_engine(database_url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory bound to an engine.

    expire_on_commit=False: rows returned by a store stay readable after the
    session that loaded them has been closed.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create any missing tables (no-op for existing ones)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
