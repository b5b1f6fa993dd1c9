"""Database access.

- SQLAlchemy 2.x async ORM models
- Alembic migration configuration
- Connection pooling via psycopg
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncEngine

# Module-level session factory (initialized on first use)
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_database_url() -> str:
    """Database URL from settings, rewritten for the async psycopg driver."""
    from autologistics.core.settings import get_settings

    url = str(get_settings().database.url)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    elif url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)
    return url


def _init_engine(pool_size: int | None = None) -> None:
    global _engine, _async_session_factory

    if _engine is not None:
        return

    from autologistics.core.settings import get_settings

    settings = get_settings()

    _engine = create_async_engine(
        get_database_url(),
        pool_size=pool_size or settings.database.pool_size,
        max_overflow=settings.database.max_overflow,
        pool_timeout=settings.database.pool_timeout,
        echo=settings.database.echo,
    )
    _async_session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


def get_session_factory(pool_size: int | None = None) -> async_sessionmaker[AsyncSession]:
    """Shared session factory, creating the engine on first use."""
    _init_engine(pool_size)
    if _async_session_factory is None:
        msg = "Database session factory not initialized"
        raise RuntimeError(msg)
    return _async_session_factory


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session.

    Usage:
        async with get_async_session() as session:
            result = await session.execute(query)
            await session.commit()

    Yields:
        AsyncSession for database operations; rolled back if the block raises.
    """
    session = get_session_factory()()
    try:
        yield session
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def close_engine() -> None:
    """Close the database engine. Call during application shutdown."""
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
