"""
Extraction Session Cleanup

Housekeeping for extraction sessions:

- archived sessions untouched for CLEANUP_ARCHIVED_AFTER_DAYS are deleted
- extracted sessions nobody reviewed within CLEANUP_STALE_EXTRACTED_AFTER_DAYS
  are deleted
- reviewed sessions untouched for ARCHIVE_REVIEWED_AFTER_DAYS are archived

Usage:
    cleanup = SessionCleanupService(db)
    stats = await cleanup.get_cleanup_stats()
    result = await cleanup.perform_full_cleanup()
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conceptlab.config.extraction import ExtractionSettings, extraction_settings
from conceptlab.db.models import ExtractionSession
from conceptlab.enums import ExtractionStatus
from conceptlab.models.extraction import CleanupResult, CleanupStats

logger = logging.getLogger(__name__)


def _cutoff(days: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


class SessionCleanupService:
    """Deletes and archives old extraction sessions."""

    def __init__(self, db: AsyncSession, config: Optional[ExtractionSettings] = None):
        self.db = db
        self.config = config or extraction_settings

    def _archived_query(self, days: int):
        return select(ExtractionSession.id).where(
            ExtractionSession.status == ExtractionStatus.ARCHIVED.value,
            ExtractionSession.updated_at < _cutoff(days),
        )

    def _reviewed_query(self, days: int):
        return select(ExtractionSession).where(
            ExtractionSession.status == ExtractionStatus.REVIEWED.value,
            ExtractionSession.updated_at < _cutoff(days),
        )

    async def _stale_ids(self, days: int) -> list[str]:
        # reviewed_count lives inside a JSON document, so it is filtered here
        result = await self.db.execute(
            select(ExtractionSession.id, ExtractionSession.review_progress).where(
                ExtractionSession.status == ExtractionStatus.EXTRACTED.value,
                ExtractionSession.extraction_date < _cutoff(days),
            )
        )
        return [
            row.id
            for row in result
            if not (row.review_progress or {}).get("reviewed_count", 0)
        ]

    async def _delete(self, ids: list[str]) -> int:
        if not ids:
            return 0
        await self.db.execute(
            delete(ExtractionSession)
            .where(ExtractionSession.id.in_(ids))
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return len(ids)

    async def cleanup_archived_sessions(self, older_than_days: Optional[int] = None) -> int:
        """Delete archived sessions not updated for older_than_days (default 30)."""
        days = older_than_days if older_than_days is not None else self.config.CLEANUP_ARCHIVED_AFTER_DAYS
        ids = list((await self.db.execute(self._archived_query(days))).scalars())
        deleted = await self._delete(ids)
        logger.info(f"Cleaned up {deleted} archived extraction sessions older than {days} days")
        return deleted

    async def cleanup_stale_extracted_sessions(self, older_than_days: Optional[int] = None) -> int:
        """Delete extracted, never-reviewed sessions older than older_than_days (default 7)."""
        days = (
            older_than_days
            if older_than_days is not None
            else self.config.CLEANUP_STALE_EXTRACTED_AFTER_DAYS
        )
        deleted = await self._delete(await self._stale_ids(days))
        logger.info(f"Cleaned up {deleted} stale extraction sessions older than {days} days")
        return deleted

    async def archive_old_reviewed_sessions(self, older_than_days: Optional[int] = None) -> int:
        """Archive reviewed sessions not updated for older_than_days (default 90)."""
        days = older_than_days if older_than_days is not None else self.config.ARCHIVE_REVIEWED_AFTER_DAYS
        sessions = list((await self.db.execute(self._reviewed_query(days))).scalars())

        now = datetime.now(timezone.utc)
        for session in sessions:
            session.status = ExtractionStatus.ARCHIVED.value
            session.active_course_id = None
            session.updated_at = now
        if sessions:
            await self.db.commit()

        logger.info(f"Archived {len(sessions)} reviewed extraction sessions older than {days} days")
        return len(sessions)

    async def get_cleanup_stats(self) -> CleanupStats:
        """Count sessions each cleanup rule would currently touch."""
        total = await self.db.scalar(select(func.count()).select_from(ExtractionSession))
        archived = await self.db.scalar(
            select(func.count()).select_from(
                self._archived_query(self.config.CLEANUP_ARCHIVED_AFTER_DAYS).subquery()
            )
        )
        reviewed = await self.db.scalar(
            select(func.count()).select_from(
                self._reviewed_query(self.config.ARCHIVE_REVIEWED_AFTER_DAYS).subquery()
            )
        )
        stale = await self._stale_ids(self.config.CLEANUP_STALE_EXTRACTED_AFTER_DAYS)

        return CleanupStats(
            total_sessions=total or 0,
            archived_sessions=archived or 0,
            stale_sessions=len(stale),
            old_reviewed_sessions=reviewed or 0,
        )

    async def perform_full_cleanup(
        self,
        archived_older_than: Optional[int] = None,
        stale_older_than: Optional[int] = None,
        reviewed_older_than: Optional[int] = None,
    ) -> CleanupResult:
        """Run all three rules. Sessions archived by this run are not deleted by it."""
        archived_deleted = await self.cleanup_archived_sessions(archived_older_than)
        stale_deleted = await self.cleanup_stale_extracted_sessions(stale_older_than)
        reviewed_archived = await self.archive_old_reviewed_sessions(reviewed_older_than)

        result = CleanupResult(
            archived_deleted=archived_deleted,
            stale_deleted=stale_deleted,
            reviewed_archived=reviewed_archived,
        )
        logger.info(f"Session cleanup finished: {result.model_dump()}")
        return result
