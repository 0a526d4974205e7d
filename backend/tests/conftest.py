"""
Shared Test Fixtures and Configuration

This module provides pytest fixtures used across the unit tests: an in-memory
SQLite database (aiosqlite), extraction settings without pacing delays, and
an LLM gateway double. Data builders live in tests/factories.py.
"""

import os
import sys
from pathlib import Path
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

# Point the application at SQLite before any conceptlab import builds the engine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Add the backend directory to the path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load .env file from project root BEFORE any fixtures run
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

from conceptlab.config.extraction import ExtractionSettings
from conceptlab.db.base import Base
from tests.factories import make_extracted


# ============================================================================
# Database
# ============================================================================


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test, shared across sessions via StaticPool."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ============================================================================
# Configuration
# ============================================================================


@pytest.fixture
def test_settings() -> ExtractionSettings:
    """Extraction settings with fast retries and no pacing delays."""
    return ExtractionSettings(
        MODEL="openai/gpt-4o-mini",
        LLM_TIMEOUT_SECONDS=5.0,
        LLM_MAX_ATTEMPTS=3,
        RETRY_BASE_DELAY_SECONDS=0.0,
        INTER_CHUNK_DELAY_SECONDS=0.0,
        INTER_BATCH_DELAY_SECONDS=0.0,
    )


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Sleep replacement that records requested delays without waiting."""
    return AsyncMock(return_value=None)


# ============================================================================
# LLM doubles
# ============================================================================


@pytest.fixture
def mock_gateway() -> MagicMock:
    """
    LLM gateway double.

    extract_concepts returns one concept per call, named after the call
    number; score_similarity returns no matches.
    """
    gateway = MagicMock()
    gateway.model = "test/model"

    calls = {"count": 0}

    async def extract(content):
        calls["count"] += 1
        return [make_extracted(f"Concept {calls['count']}")]

    gateway.extract_concepts = AsyncMock(side_effect=extract)
    gateway.score_similarity = AsyncMock(return_value=[])
    return gateway
