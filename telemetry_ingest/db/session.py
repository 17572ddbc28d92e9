"""
Async database engine and session factory.

SQLAlchemy 2.x async engine on the asyncpg driver. Module-level engine and
session factory singletons are created lazily; ``get_async_session`` is the
FastAPI dependency, ``session_scope`` the equivalent for scripts.

CHANGELOG:
- 2026-10-16: Add session_scope() for the retention CLI
- 2026-10-16: Initial creation
"""

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

# Module-level singletons, initialized lazily via init_engine().
async_engine: AsyncEngine | None = None
async_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_database_url() -> str:
    """Read DATABASE_URL from environment.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
    """
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL environment variable is required")
    return url


def create_engine(url: str | None = None) -> AsyncEngine:
    """Create an async engine for *url* (defaults to DATABASE_URL)."""
    return create_async_engine(url or get_database_url(), echo=False, pool_pre_ping=True)


def init_engine(url: str | None = None) -> None:
    """Initialize the module-level async engine and session factory.

    Safe to call multiple times; subsequent calls are no-ops.

    Args:
        url: Database URL; defaults to DATABASE_URL.
    """
    global async_engine, async_session_factory  # noqa: PLW0603
    if async_engine is None:
        async_engine = create_engine(url)
        async_session_factory = async_sessionmaker(
            async_engine, class_=AsyncSession, expire_on_commit=False
        )


async def dispose_engine() -> None:
    """Dispose the module-level engine (application shutdown)."""
    global async_engine, async_session_factory  # noqa: PLW0603
    if async_engine is not None:
        await async_engine.dispose()
    async_engine = None
    async_session_factory = None


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for FastAPI dependency injection.

    Yields:
        AsyncSession: Closed automatically after the request completes.
    """
    init_engine()
    assert async_session_factory is not None, "Session factory not initialized"
    async with async_session_factory() as session:
        yield session


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """Async context manager yielding a session outside of FastAPI."""
    init_engine()
    assert async_session_factory is not None, "Session factory not initialized"
    async with async_session_factory() as session:
        yield session
