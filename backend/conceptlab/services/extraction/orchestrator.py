"""
Extraction Orchestrator

Drives one course's extraction through the session state machine:

    analyzing -> extracting -> similarity_checking -> extracted

with error reachable from every phase. Progress is written to the session
after every chunk and every similarity batch; those writes are the resume
checkpoints and what status readers see.

Failure policy:
- An LLM failure in any chunk or similarity batch moves the whole session to
  error with the message recorded on its progress. Failed chunks are never
  skipped.
- Updating the course's denormalized extraction status is secondary: its
  failures are logged and swallowed.

Pacing between chunks and between similarity batches uses an injectable
sleep so tests run without waiting.

Usage:
    orchestrator = ExtractionOrchestrator(db, gateway=gateway, index_cache=cache)
    result = await orchestrator.run_extraction(course_id=5)
    print(result.statistics.total_concepts)
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from conceptlab.config.extraction import ExtractionSettings, extraction_settings
from conceptlab.db.models import Course, ExtractionSession, ensure_utc
from conceptlab.enums import (
    ACTIVE_EXTRACTION_STATUSES,
    ChunkType,
    CourseExtractionStatus,
    ExtractionPhase,
    ExtractionStatus,
)
from conceptlab.errors import ConceptExtractionError, CourseNotFoundError
from conceptlab.models.concepts import ExtractedConcept, SimilarityMatch
from conceptlab.models.extraction import (
    ContentChunk,
    CourseContent,
    ExtractionInput,
    ExtractionMetadata,
    ExtractionProgress,
    ExtractionResult,
    ExtractionStatistics,
    SessionStatus,
)
from conceptlab.services.extraction.chunker import ChunkingConfig, ContentChunker
from conceptlab.services.extraction.concept_manager import ConceptManager
from conceptlab.services.extraction.gateway import LLMGateway
from conceptlab.services.extraction.index_cache import ConceptIndexCache
from conceptlab.services.extraction.session_store import ExtractionSessionStore, update_course_status
from conceptlab.services.llm.resilience import SleepFn

logger = logging.getLogger(__name__)

KEYWORD_SEPARATOR = ", "


def chunk_to_input(chunk: ContentChunk) -> ExtractionInput:
    """Build the LLM input for one chunk; keyword chunks fill both word lists."""
    if chunk.type == ChunkType.KEYWORDS:
        words = [w for w in chunk.content.split(KEYWORD_SEPARATOR) if w.strip()]
        return ExtractionInput(keywords=words, new_words=list(words))
    if chunk.type == ChunkType.NOTES:
        return ExtractionInput(notes=chunk.content)
    if chunk.type == ChunkType.PRACTICE:
        return ExtractionInput(practice=chunk.content)
    return ExtractionInput(homework=chunk.content)


class ExtractionOrchestrator:
    """
    Runs and resumes extraction sessions against one database session.

    Args:
        db: Async database session
        gateway: LLM gateway (default built from config)
        index_cache: Shared concept index cache
        config: Extraction settings
        chunker: Content chunker (default built from config)
        sleep: Awaitable used for pacing delays
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway: Optional[LLMGateway] = None,
        index_cache: Optional[ConceptIndexCache] = None,
        config: Optional[ExtractionSettings] = None,
        chunker: Optional[ContentChunker] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.db = db
        self.config = config or extraction_settings
        self.gateway = gateway or LLMGateway(config=self.config)
        self.manager = ConceptManager(
            db, gateway=self.gateway, index_cache=index_cache, config=self.config
        )
        self.store = ExtractionSessionStore(db)
        self.chunker = chunker or ContentChunker(ChunkingConfig.from_settings(self.config))
        self._sleep = sleep

    # =========================================================================
    # Entry points
    # =========================================================================

    async def create_session(self, course_id: int) -> ExtractionSession:
        """
        Validate the course, plan its chunks and persist a new analyzing session.

        Raises:
            CourseNotFoundError: If the course does not exist
            ConceptExtractionError: If notes, practice or keywords are empty, or
                an extraction is already active for the course
        """
        course = await self.db.get(Course, course_id)
        if course is None:
            raise CourseNotFoundError(f"Course with ID {course_id} not found")

        content = CourseContent.model_validate(course)
        keywords = [k for k in content.keywords if k and k.strip()]
        if not content.notes.strip() or not content.practice.strip() or not keywords:
            raise ConceptExtractionError(
                f"Course {course_id} is missing required fields (notes, practice, or keywords)"
            )

        if await self.store.find_active_for_course(course_id) is not None:
            raise ConceptExtractionError("Extraction already in progress for this course")

        plan = self.chunker.analyze_course_content(content)
        progress = ExtractionProgress(
            phase=ExtractionPhase.ANALYZING,
            total_chunks=len(plan.recommended_chunks),
            total_concepts=plan.estimated_concepts,
            estimated_time_remaining=plan.estimated_processing_time,
            current_operation="Content analysis completed",
            chunks=plan.recommended_chunks,
            last_updated=datetime.now(timezone.utc),
        )
        metadata = ExtractionMetadata(
            llm_model=self.gateway.model,
            source_content_length=plan.total_content_length,
        )

        session = await self.store.create(
            course_id=course_id,
            course_name=f"Course {course_id} - {KEYWORD_SEPARATOR.join(content.keywords)}",
            progress=progress,
            metadata=metadata,
        )
        await self._update_course_status(course_id, CourseExtractionStatus.EXTRACTING)
        return session

    async def run_session(self, session_id: str) -> ExtractionResult:
        """
        Drive an active session to completion, continuing from its last checkpoint.

        Processed chunks and already-checked concepts are not redone.

        Raises:
            ExtractionSessionNotFoundError: If the session does not exist
            ConceptExtractionError: If the session is not in an active status
            LLMServiceError: If a model call fails; the session is left in error
        """
        session = await self.store.get_or_raise(session_id)
        status = ExtractionStatus(session.status)
        if status not in ACTIVE_EXTRACTION_STATUSES:
            raise ConceptExtractionError(
                f"Extraction session {session_id} is not active (status: {status.value})"
            )

        logger.info(f"Running extraction session {session_id} for course {session.course_id} from {status.value}")
        try:
            if status != ExtractionStatus.SIMILARITY_CHECKING:
                await self._process_chunks(session_id)
            await self._check_similarity(session_id)
            return await self._finalize(session_id)
        except Exception as e:
            logger.error(f"Extraction session {session_id} failed: {e}")
            await self._mark_error(session_id, str(e) or type(e).__name__)
            raise

    async def run_extraction(self, course_id: int) -> ExtractionResult:
        """Create a session for the course and run it to completion."""
        session = await self.create_session(course_id)
        return await self.run_session(session.id)

    async def resume_extraction(self, session_id: str) -> ExtractionResult:
        return await self.run_session(session_id)

    async def get_session_status(self, session_id: str) -> SessionStatus:
        """Last persisted state of a session."""
        session = await self.store.get_or_raise(session_id)
        progress = ExtractionProgress.model_validate(session.extraction_progress or {})
        metadata = ExtractionMetadata.model_validate(session.extraction_metadata or {})

        return SessionStatus(
            session_id=session.id,
            course_id=session.course_id,
            course_name=session.course_name,
            status=ExtractionStatus(session.status),
            progress=progress,
            error_message=progress.error_message,
            statistics=metadata.statistics,
            extracted_concepts=[
                ExtractedConcept.model_validate(c) for c in session.extracted_concepts or []
            ],
            similarity_matches={
                position: [SimilarityMatch.model_validate(m) for m in matches]
                for position, matches in (session.similarity_matches or {}).items()
            },
        )

    # =========================================================================
    # Phases
    # =========================================================================

    async def _process_chunks(self, session_id: str) -> None:
        session = await self.store.get_or_raise(session_id)
        progress = ExtractionProgress.model_validate(session.extraction_progress or {})
        concepts = [ExtractedConcept.model_validate(c) for c in session.extracted_concepts or []]
        chunks = progress.chunks

        await self.store.update_fields(
            session_id,
            {
                "status": ExtractionStatus.EXTRACTING,
                "extraction_progress.phase": ExtractionPhase.EXTRACTING,
                "extraction_progress.current_operation": "Starting chunk processing",
            },
        )

        pending = [i for i, chunk in enumerate(chunks) if not chunk.processed]
        if len(pending) < len(chunks):
            logger.info(f"Session {session_id}: resuming with {len(pending)}/{len(chunks)} chunks left")

        for position, index in enumerate(pending):
            chunk = chunks[index]
            logger.debug(f"Session {session_id}: processing chunk {index + 1}/{len(chunks)} ({chunk.type.value})")
            await self.store.update_fields(
                session_id,
                {
                    "extraction_progress.current_operation": (
                        f"Processing {chunk.type.value} content ({index + 1}/{len(chunks)})"
                    ),
                },
            )

            started = time.monotonic()
            extracted = await self.gateway.extract_concepts(chunk_to_input(chunk))

            chunk.processed = True
            chunk.extracted_concepts = extracted
            chunk.processed_at = datetime.now(timezone.utc)
            chunk.processing_time_ms = int((time.monotonic() - started) * 1000)
            concepts.extend(extracted)

            remaining = [c for c in chunks if not c.processed]
            await self.store.update_fields(
                session_id,
                {
                    "extracted_concepts": concepts,
                    "extraction_progress.chunks": chunks,
                    "extraction_progress.processed_chunks": len(chunks) - len(remaining),
                    "extraction_progress.extracted_concepts": len(concepts),
                    "extraction_progress.estimated_time_remaining": (
                        self.chunker.estimate_processing_time(
                            len(remaining), sum(c.estimated_concepts for c in remaining)
                        )
                        if remaining
                        else 0
                    ),
                },
            )
            logger.debug(f"Session {session_id}: chunk {index + 1} yielded {len(extracted)} concepts")

            if position < len(pending) - 1:
                await self._sleep(self.config.INTER_CHUNK_DELAY_SECONDS)

        await self.store.update_fields(
            session_id,
            {
                "status": ExtractionStatus.SIMILARITY_CHECKING,
                "extraction_progress.phase": ExtractionPhase.SIMILARITY_CHECKING,
                "extraction_progress.current_operation": "Starting similarity analysis",
            },
        )
        logger.info(f"Session {session_id}: extracted {len(concepts)} concepts from {len(chunks)} chunks")

    async def _check_similarity(self, session_id: str) -> None:
        session = await self.store.get_or_raise(session_id)
        progress = ExtractionProgress.model_validate(session.extraction_progress or {})
        concepts = [ExtractedConcept.model_validate(c) for c in session.extracted_concepts or []]
        matches: dict[str, list] = dict(session.similarity_matches or {})

        total = len(concepts)
        batch_size = max(1, self.config.SIMILARITY_BATCH_SIZE)
        start_at = min(progress.similarity_checked, total)

        index = await self.manager.get_concept_index()
        if not index:
            logger.info(f"Session {session_id}: concept index is empty, skipping similarity calls")

        for start in range(start_at, total, batch_size):
            batch = concepts[start : start + batch_size]
            end = min(start + batch_size, total)

            await self.store.update_fields(
                session_id,
                {
                    "extraction_progress.current_operation": (
                        f"Checking similarity for concepts {start + 1}-{end} of {total}"
                    ),
                },
            )

            if index:
                results = await asyncio.gather(
                    *(self.gateway.score_similarity(concept, index) for concept in batch)
                )
            else:
                results = [[] for _ in batch]

            for position, found in enumerate(results, start=start):
                matches[str(position)] = [m.model_dump(mode="json") for m in found]

            await self.store.update_fields(
                session_id,
                {
                    "similarity_matches": matches,
                    "extraction_progress.similarity_checked": end,
                },
            )
            logger.debug(f"Session {session_id}: similarity checked {end}/{total}")

            if end < total:
                await self._sleep(self.config.INTER_BATCH_DELAY_SECONDS)

    async def _finalize(self, session_id: str) -> ExtractionResult:
        session = await self.store.get_or_raise(session_id)
        progress = ExtractionProgress.model_validate(session.extraction_progress or {})
        concepts = [ExtractedConcept.model_validate(c) for c in session.extracted_concepts or []]

        total = len(concepts)
        average = sum(c.confidence for c in concepts) / total if total else 0.0
        elapsed = (
            datetime.now(timezone.utc) - ensure_utc(session.extraction_date)
        ).total_seconds()

        statistics = ExtractionStatistics(
            total_concepts=total,
            high_confidence_count=sum(
                1 for c in concepts if c.confidence > self.config.HIGH_CONFIDENCE_THRESHOLD
            ),
            average_confidence=round(average, 2),
            processing_time=round(elapsed),
            chunks_processed=progress.processed_chunks,
        )

        await self.store.update_fields(
            session_id,
            {
                "status": ExtractionStatus.EXTRACTED,
                "extraction_progress.phase": ExtractionPhase.COMPLETED,
                "extraction_progress.current_operation": "Extraction completed successfully",
                "extraction_progress.estimated_time_remaining": 0,
                "review_progress.total_concepts": total,
                "extraction_metadata.extraction_confidence": average,
                "extraction_metadata.total_processing_time": elapsed,
                "extraction_metadata.statistics": statistics,
            },
        )
        await self._update_course_status(
            session.course_id,
            CourseExtractionStatus.EXTRACTED,
            extracted_names=[c.name for c in concepts],
        )

        logger.info(
            f"Extraction session {session_id} completed: {total} concepts, "
            f"{statistics.high_confidence_count} high-confidence, {statistics.processing_time}s"
        )
        return ExtractionResult(extraction_id=session_id, statistics=statistics)

    # =========================================================================
    # Error and course status
    # =========================================================================

    async def _mark_error(self, session_id: str, message: str) -> None:
        """Record the failure on the session; a failure to do so is only logged."""
        try:
            await self.db.rollback()
            session = await self.store.update_fields(
                session_id,
                {
                    "status": ExtractionStatus.ERROR,
                    "extraction_progress.phase": ExtractionPhase.ERROR,
                    "extraction_progress.error_message": message,
                },
            )
        except Exception as e:
            logger.error(f"Failed to record error on extraction session {session_id}: {e}")
            return

        await self._update_course_status(session.course_id, CourseExtractionStatus.ERROR)

    async def _update_course_status(
        self,
        course_id: int,
        status: CourseExtractionStatus,
        extracted_names: Optional[list[str]] = None,
    ) -> None:
        await update_course_status(self.db, course_id, status, extracted_names)
