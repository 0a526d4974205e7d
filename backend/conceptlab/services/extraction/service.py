"""
Concept Extraction Service

Caller-facing entry point for the extraction pipeline. Each operation opens
its own database session from the session factory. The LLM gateway and the
concept index cache are shared by every operation of one service instance.

Background extractions started with start_extraction run as asyncio tasks on
the current event loop. They are not cancellable; callers poll
get_session_status instead.

Usage:
    from conceptlab.db import async_session_maker
    from conceptlab.services.extraction import ConceptExtractionService

    service = ConceptExtractionService(async_session_maker)
    session_id = await service.start_extraction(course_id=5)
    status = await service.get_session_status(session_id)
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from conceptlab.config.extraction import ExtractionSettings, extraction_settings
from conceptlab.errors import MergeValidationError
from conceptlab.models.concepts import (
    ConceptIndexEntry,
    ConceptRead,
    ConceptUpdate,
    DuplicationReport,
    ExtractedConcept,
    MergeExtraData,
    MergePreview,
)
from conceptlab.models.extraction import (
    CleanupResult,
    CleanupStats,
    ExtractionResult,
    ReviewDecision,
    ReviewResult,
    SessionStatus,
)
from conceptlab.services.extraction.cleanup import SessionCleanupService
from conceptlab.services.extraction.concept_manager import ConceptManager
from conceptlab.services.extraction.duplicates import DuplicationDetector
from conceptlab.services.extraction.gateway import LLMGateway
from conceptlab.services.extraction.index_cache import ConceptIndexCache
from conceptlab.services.extraction.merger import ConceptMerger
from conceptlab.services.extraction.orchestrator import ExtractionOrchestrator
from conceptlab.services.extraction.review import ReviewService
from conceptlab.services.llm.resilience import SleepFn

logger = logging.getLogger(__name__)


class ConceptExtractionService:
    """
    Facade over orchestrator, review, merge, duplicate and cleanup services.

    Args:
        session_factory: async_sessionmaker producing AsyncSessions
        gateway: LLM gateway (default built from settings)
        index_cache: Concept index cache (default loads through session_factory)
        settings: Extraction settings
        sleep: Awaitable used for pacing delays
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: Optional[LLMGateway] = None,
        index_cache: Optional[ConceptIndexCache] = None,
        settings: Optional[ExtractionSettings] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.session_factory = session_factory
        self.config = settings or extraction_settings
        self.gateway = gateway or LLMGateway(config=self.config)
        self.index_cache = index_cache or ConceptIndexCache(
            self._load_index, ttl_seconds=self.config.INDEX_CACHE_TTL_SECONDS
        )
        self._sleep = sleep
        self._tasks: set[asyncio.Task] = set()

    async def _load_index(self) -> list[ConceptIndexEntry]:
        async with self.session_factory() as db:
            return await self._manager(db).load_concept_index()

    def _manager(self, db: AsyncSession) -> ConceptManager:
        return ConceptManager(db, gateway=self.gateway, index_cache=self.index_cache, config=self.config)

    def _merger(self, db: AsyncSession) -> ConceptMerger:
        return ConceptMerger(db, on_change=self.index_cache.invalidate, config=self.config)

    def _orchestrator(self, db: AsyncSession) -> ExtractionOrchestrator:
        return ExtractionOrchestrator(
            db,
            gateway=self.gateway,
            index_cache=self.index_cache,
            config=self.config,
            sleep=self._sleep,
        )

    # =========================================================================
    # Extraction
    # =========================================================================

    async def start_extraction(self, course_id: int) -> str:
        """
        Create an extraction session and run it in the background.

        Returns:
            The new session id

        Raises:
            CourseNotFoundError: If the course does not exist
            ConceptExtractionError: If the course lacks content or already has
                an active extraction
        """
        async with self.session_factory() as db:
            session = await self._orchestrator(db).create_session(course_id)
            session_id = session.id

        self._spawn(session_id)
        logger.info(f"Started background extraction {session_id} for course {course_id}")
        return session_id

    def _spawn(self, session_id: str) -> None:
        task = asyncio.create_task(self._run_in_background(session_id), name=f"extraction-{session_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_in_background(self, session_id: str) -> None:
        async with self.session_factory() as db:
            try:
                await self._orchestrator(db).run_session(session_id)
            except Exception as e:
                # The orchestrator has already recorded the failure on the session
                logger.error(f"Background extraction {session_id} failed: {e}")

    async def wait_for_background(self) -> None:
        """Wait until every background extraction started by this service has finished."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def run_extraction(self, course_id: int) -> ExtractionResult:
        """Run a full extraction in the foreground."""
        async with self.session_factory() as db:
            return await self._orchestrator(db).run_extraction(course_id)

    async def resume_extraction(self, session_id: str, background: bool = False) -> Optional[ExtractionResult]:
        """
        Continue an interrupted session from its last checkpoint.

        Returns the result when run in the foreground, None when backgrounded.
        """
        if background:
            self._spawn(session_id)
            return None
        async with self.session_factory() as db:
            return await self._orchestrator(db).resume_extraction(session_id)

    async def get_session_status(self, session_id: str) -> SessionStatus:
        async with self.session_factory() as db:
            return await self._orchestrator(db).get_session_status(session_id)

    # =========================================================================
    # Review and merge
    # =========================================================================

    async def apply_reviewed_concepts(
        self,
        course_id: int,
        decisions: list[ReviewDecision],
        session_id: Optional[str] = None,
        finalize: bool = True,
    ) -> ReviewResult:
        async with self.session_factory() as db:
            review = ReviewService(db, manager=self._manager(db), merger=self._merger(db))
            return await review.apply_reviewed_concepts(course_id, decisions, session_id, finalize)

    async def merge_concepts(
        self,
        source_ids: Sequence[str],
        target_data: Optional[Union[dict[str, Any], ConceptUpdate]] = None,
        extra: Optional[MergeExtraData] = None,
    ) -> ConceptRead:
        """
        Merge concepts into one.

        The target is target_data["id"] when given, otherwise the first id in
        source_ids. Remaining fields of target_data become the merged
        concept's final values.

        Raises:
            MergeValidationError: Fewer than two concepts, or an invalid merge
            ConceptNotFoundError: If any concept does not exist
        """
        data = target_data.model_dump(exclude_unset=True) if isinstance(target_data, ConceptUpdate) else dict(target_data or {})
        target_id = data.pop("id", None) or (source_ids[0] if source_ids else None)
        sources = [i for i in dict.fromkeys(source_ids) if i != target_id]
        if target_id is None or not sources:
            raise MergeValidationError("At least 2 concepts must be selected for merging.")

        final_data = None
        if data:
            final_data = ConceptUpdate(
                **{k: v for k, v in data.items() if k in ConceptUpdate.model_fields}
            )

        async with self.session_factory() as db:
            return await self._merger(db).merge_existing_concepts(
                target_id, sources, final_data=final_data, extra=extra
            )

    async def preview_merge(
        self,
        target_id: str,
        source_ids: Optional[Sequence[str]] = None,
        extracted: Optional[ExtractedConcept] = None,
        extra: Optional[MergeExtraData] = None,
    ) -> MergePreview:
        async with self.session_factory() as db:
            return await self._merger(db).preview_merge(target_id, source_ids, extracted, extra)

    async def check_duplicates(self, extracted: list[ExtractedConcept]) -> DuplicationReport:
        async with self.session_factory() as db:
            return await DuplicationDetector(db).get_duplication_report(extracted)

    # =========================================================================
    # Housekeeping
    # =========================================================================

    async def get_cleanup_stats(self) -> CleanupStats:
        async with self.session_factory() as db:
            return await SessionCleanupService(db, self.config).get_cleanup_stats()

    async def perform_cleanup(self) -> CleanupResult:
        async with self.session_factory() as db:
            return await SessionCleanupService(db, self.config).perform_full_cleanup()
