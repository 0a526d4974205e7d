"""
Unit tests for extraction session cleanup.

Sessions are inserted with back-dated timestamps instead of waiting.

Test Organization:
    - TestArchivedCleanup: Deleting old archived sessions
    - TestStaleCleanup: Deleting never-reviewed extracted sessions
    - TestReviewedArchiving: Archiving old reviewed sessions
    - TestStatsAndFullCleanup: Counts and the combined run
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from conceptlab.db.models import ExtractionSession
from conceptlab.enums import ExtractionStatus
from conceptlab.services.extraction.cleanup import SessionCleanupService


@pytest.fixture
def cleanup(db_session, test_settings) -> SessionCleanupService:
    return SessionCleanupService(db_session, test_settings)


async def add_session(
    db_session,
    status: ExtractionStatus,
    age_days: int,
    reviewed_count: int = 0,
    course_id: int = 1,
) -> str:
    stamp = datetime.now(timezone.utc) - timedelta(days=age_days)
    session = ExtractionSession(
        course_id=course_id,
        course_name=f"Course {course_id}",
        status=status.value,
        extraction_date=stamp,
        updated_at=stamp,
        review_progress={"total_concepts": 3, "reviewed_count": reviewed_count},
    )
    db_session.add(session)
    await db_session.commit()
    return session.id


async def statuses(db_session) -> dict[str, str]:
    db_session.expire_all()
    result = await db_session.execute(select(ExtractionSession.id, ExtractionSession.status))
    return {row.id: row.status for row in result}


class TestArchivedCleanup:
    """Tests for cleanup_archived_sessions."""

    @pytest.mark.asyncio
    async def test_old_archived_sessions_are_deleted(self, cleanup, db_session):
        old = await add_session(db_session, ExtractionStatus.ARCHIVED, 40)
        recent = await add_session(db_session, ExtractionStatus.ARCHIVED, 5)
        reviewed = await add_session(db_session, ExtractionStatus.REVIEWED, 40)

        assert await cleanup.cleanup_archived_sessions() == 1

        remaining = await statuses(db_session)
        assert old not in remaining
        assert {recent, reviewed} <= set(remaining)

    @pytest.mark.asyncio
    async def test_custom_age(self, cleanup, db_session):
        await add_session(db_session, ExtractionStatus.ARCHIVED, 5)

        assert await cleanup.cleanup_archived_sessions(older_than_days=1) == 1

    @pytest.mark.asyncio
    async def test_nothing_to_delete(self, cleanup):
        assert await cleanup.cleanup_archived_sessions() == 0


class TestStaleCleanup:
    """Tests for cleanup_stale_extracted_sessions."""

    @pytest.mark.asyncio
    async def test_only_unreviewed_old_sessions_are_deleted(self, cleanup, db_session):
        stale = await add_session(db_session, ExtractionStatus.EXTRACTED, 10)
        partly_reviewed = await add_session(
            db_session, ExtractionStatus.EXTRACTED, 10, reviewed_count=2
        )
        fresh = await add_session(db_session, ExtractionStatus.EXTRACTED, 2)
        failed = await add_session(db_session, ExtractionStatus.ERROR, 10)

        assert await cleanup.cleanup_stale_extracted_sessions() == 1

        remaining = await statuses(db_session)
        assert stale not in remaining
        assert {partly_reviewed, fresh, failed} <= set(remaining)


class TestReviewedArchiving:
    """Tests for archive_old_reviewed_sessions."""

    @pytest.mark.asyncio
    async def test_old_reviewed_sessions_are_archived(self, cleanup, db_session):
        old = await add_session(db_session, ExtractionStatus.REVIEWED, 100)
        recent = await add_session(db_session, ExtractionStatus.REVIEWED, 10)

        assert await cleanup.archive_old_reviewed_sessions() == 1

        remaining = await statuses(db_session)
        assert remaining[old] == ExtractionStatus.ARCHIVED.value
        assert remaining[recent] == ExtractionStatus.REVIEWED.value


class TestStatsAndFullCleanup:
    """Tests for get_cleanup_stats and perform_full_cleanup."""

    async def populate(self, db_session) -> dict[str, str]:
        return {
            "archived": await add_session(db_session, ExtractionStatus.ARCHIVED, 40),
            "stale": await add_session(db_session, ExtractionStatus.EXTRACTED, 10),
            "reviewed": await add_session(db_session, ExtractionStatus.REVIEWED, 100),
            "current": await add_session(db_session, ExtractionStatus.EXTRACTED, 1),
        }

    @pytest.mark.asyncio
    async def test_stats(self, cleanup, db_session):
        await self.populate(db_session)

        stats = await cleanup.get_cleanup_stats()

        assert stats.total_sessions == 4
        assert stats.archived_sessions == 1
        assert stats.stale_sessions == 1
        assert stats.old_reviewed_sessions == 1

    @pytest.mark.asyncio
    async def test_stats_do_not_modify(self, cleanup, db_session):
        ids = await self.populate(db_session)

        await cleanup.get_cleanup_stats()

        assert set(await statuses(db_session)) == set(ids.values())

    @pytest.mark.asyncio
    async def test_full_cleanup(self, cleanup, db_session):
        ids = await self.populate(db_session)

        result = await cleanup.perform_full_cleanup()

        assert result.archived_deleted == 1
        assert result.stale_deleted == 1
        assert result.reviewed_archived == 1

        remaining = await statuses(db_session)
        assert set(remaining) == {ids["reviewed"], ids["current"]}
        assert remaining[ids["reviewed"]] == ExtractionStatus.ARCHIVED.value

    @pytest.mark.asyncio
    async def test_empty_database(self, cleanup):
        stats = await cleanup.get_cleanup_stats()

        assert stats.total_sessions == 0
        assert (await cleanup.perform_full_cleanup()).model_dump() == {
            "archived_deleted": 0,
            "stale_deleted": 0,
            "reviewed_archived": 0,
        }
