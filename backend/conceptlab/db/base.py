"""
Database Base Configuration

Sets up the async SQLAlchemy engine and session management. PostgreSQL
(asyncpg) is the default; any async URL can be supplied through DATABASE_URL
(tests use sqlite+aiosqlite).

Usage:
    from conceptlab.db.base import async_session_maker, Base

    async with async_session_maker() as session:
        result = await session.execute(...)
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from conceptlab.config import settings, yaml_config


# Get pool configuration from yaml config
db_config: dict[str, Any] = yaml_config.get("database", {})
pool_size: int = db_config.get("pool_size", 5)
max_overflow: int = db_config.get("max_overflow", 10)
pool_timeout: int = db_config.get("pool_timeout", 30)


def _engine_kwargs(url: str) -> dict[str, Any]:
    """Pool arguments for the engine; SQLite uses its own pool classes."""
    if url.startswith("sqlite"):
        return {"echo": settings.DEBUG}
    return {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_timeout": pool_timeout,
        "echo": settings.DEBUG,
    }


# Create async engine
engine = create_async_engine(settings.ENGINE_URL, **_engine_kwargs(settings.ENGINE_URL))

# Create async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# Import models AFTER Base is defined to avoid circular imports.
# This ensures all models are registered with Base.metadata.
from conceptlab.db import models  # noqa: F401, E402


async def init_db() -> None:
    """
    Initialize database tables.

    Creates tables that don't exist. Schema migrations are out of scope;
    this is what the CLI and tests use to bootstrap a database.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
