"""
Review Application

Applies a reviewer's decisions on extracted concepts to the concept store.

Actions:
- approve / manual_add: create the concept (or reuse the active concept with
  the same name) and link it to the course
- edit: as approve, with the reviewer's field edits applied first
- link: link the course to an existing concept and record the provenance
- merge: fold the extracted concept into an existing concept
- reject: discard

A failing decision is reported in the result's error list and the batch
carries on with the next decision.

Usage:
    service = ReviewService(db, manager=manager, merger=merger)
    result = await service.apply_reviewed_concepts(course_id=5, decisions=decisions)
    print(result.created, result.errors)
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from conceptlab.enums import (
    ACTIVE_EXTRACTION_STATUSES,
    CourseExtractionStatus,
    ExtractionStatus,
    REVIEWABLE_EXTRACTION_STATUSES,
    ReviewAction,
)
from conceptlab.errors import ConceptExtractionError, ConceptNotFoundError, ConceptValidationError
from conceptlab.models.concepts import ConceptUpdate
from conceptlab.models.extraction import ReviewDecision, ReviewProgress, ReviewResult
from conceptlab.services.extraction.concept_manager import (
    ConceptManager,
    concept_create_from_extracted,
)
from conceptlab.services.extraction.merger import ConceptMerger, unique_union
from conceptlab.services.extraction.session_store import (
    ExtractionSessionStore,
    update_course_status,
)

logger = logging.getLogger(__name__)

# Result counter incremented for each successful action
ACTION_COUNTERS = {
    ReviewAction.APPROVE: "created",
    ReviewAction.EDIT: "edited",
    ReviewAction.LINK: "linked",
    ReviewAction.MERGE: "merged",
    ReviewAction.MANUAL_ADD: "manual_added",
    ReviewAction.REJECT: "rejected",
}


class ReviewService:
    """
    Applies review decisions for one course.

    Args:
        db: Async database session
        manager: Concept manager bound to the same session
        merger: Concept merger bound to the same session
    """

    def __init__(
        self,
        db: AsyncSession,
        manager: Optional[ConceptManager] = None,
        merger: Optional[ConceptMerger] = None,
    ):
        self.db = db
        self.manager = manager or ConceptManager(db)
        self.merger = merger or ConceptMerger(db, on_change=self.manager.index_cache.invalidate)
        self.store = ExtractionSessionStore(db)

    async def apply_reviewed_concepts(
        self,
        course_id: int,
        decisions: list[ReviewDecision],
        session_id: Optional[str] = None,
        finalize: bool = True,
    ) -> ReviewResult:
        """
        Apply decisions and record them on the course's extraction session.

        Args:
            course_id: Course being reviewed
            decisions: One decision per extracted concept
            session_id: Session to record the review on (default: the latest
                reviewable session of the course)
            finalize: Mark the session reviewed; otherwise it stays in_review as a draft

        Returns:
            ReviewResult with per-action counts and collected errors

        Raises:
            ExtractionSessionNotFoundError: If session_id does not exist
            ConceptExtractionError: If the session belongs to another course or
                is still extracting
        """
        session = await self._resolve_session(course_id, session_id)
        # Rollback of a failed decision expires every loaded row
        review_session_id = session.id if session is not None else None

        result = ReviewResult()
        records: list[dict[str, Any]] = []

        for decision in decisions:
            name = decision.extracted_concept.name
            record = {
                "action": decision.action.value,
                "concept_name": name,
                "target_concept_id": decision.target_concept_id,
                "decided_at": datetime.now(timezone.utc).isoformat(),
            }
            try:
                concept_id = await self._apply_decision(course_id, decision)
            except Exception as e:
                await self.db.rollback()
                message = f'Error processing concept "{name}": {getattr(e, "message", str(e))}'
                logger.error(message)
                result.errors.append(message)
                records.append({**record, "success": False, "error": message})
                continue

            counter = ACTION_COUNTERS[decision.action]
            setattr(result, counter, getattr(result, counter) + 1)
            result.processed += 1
            records.append({**record, "concept_id": concept_id, "success": True})

        result.success = not result.errors
        logger.info(
            f"Applied {result.processed}/{len(decisions)} review decisions for course {course_id} "
            f"({len(result.errors)} errors)"
        )

        if review_session_id is not None:
            await self._record_review(review_session_id, records, result.processed, finalize)
        if finalize:
            await update_course_status(self.db, course_id, CourseExtractionStatus.REVIEWED)

        return result

    async def _resolve_session(self, course_id: int, session_id: Optional[str]):
        if session_id is None:
            return await self.store.latest_for_course(course_id, set(REVIEWABLE_EXTRACTION_STATUSES))

        session = await self.store.get_or_raise(session_id)
        if session.course_id != course_id:
            raise ConceptExtractionError(
                f"Extraction session {session_id} belongs to course {session.course_id}, not {course_id}"
            )
        if ExtractionStatus(session.status) in ACTIVE_EXTRACTION_STATUSES:
            raise ConceptExtractionError(
                f"Extraction session {session_id} is still running (status: {session.status})"
            )
        return session

    async def _apply_decision(self, course_id: int, decision: ReviewDecision) -> Optional[str]:
        """Apply one decision; returns the id of the concept it touched."""
        extracted = decision.extracted_concept
        target_course = decision.course_id or course_id

        if decision.action == ReviewAction.REJECT:
            return None

        if decision.action in (ReviewAction.APPROVE, ReviewAction.MANUAL_ADD, ReviewAction.EDIT):
            overrides = None
            if decision.action == ReviewAction.EDIT:
                if not decision.edited_concept:
                    raise ConceptValidationError("Edited concept data is required for edit action")
                overrides = decision.edited_concept

            data = concept_create_from_extracted(extracted, target_course, overrides)
            concept, created = await self.manager.create_or_find_concept(data, commit=False)
            await self.manager.link_concept_to_course(
                concept.id, target_course, extracted.confidence, extracted.source_content, commit=False
            )
            await self.db.commit()
            logger.debug(
                f"{decision.action.value}: {'created' if created else 'reused'} concept '{concept.name}'"
            )
            return concept.id

        if decision.action == ReviewAction.LINK:
            if not decision.target_concept_id:
                raise ConceptValidationError("Target concept ID is required for link action")
            concept = await self.manager.get_concept(decision.target_concept_id)
            if concept is None or not concept.is_active:
                raise ConceptNotFoundError(
                    f"Concept with ID {decision.target_concept_id} not found"
                )

            sources = unique_union(concept.created_from, [str(target_course)])
            if sources != concept.created_from:
                await self.manager.update_concept(
                    concept.id, ConceptUpdate(created_from=sources), commit=False
                )
            await self.manager.link_concept_to_course(
                concept.id, target_course, extracted.confidence, extracted.source_content, commit=False
            )
            await self.db.commit()
            return concept.id

        if decision.action == ReviewAction.MERGE:
            if decision.merge_data is None:
                raise ConceptValidationError("Merge data is required for merge action")
            merged = await self.merger.merge_extracted_into(
                decision.merge_data.primary_concept_id,
                extracted,
                extra=decision.merge_data.additional_data,
                course_id=target_course,
            )
            return merged.id

        raise ConceptValidationError(f"Unknown review action: {decision.action}")

    async def _record_review(
        self,
        session_id: str,
        records: list[dict[str, Any]],
        processed: int,
        finalize: bool,
    ) -> None:
        session = await self.store.get_or_raise(session_id)
        review = ReviewProgress.model_validate(session.review_progress or {})

        await self.store.update_fields(
            session_id,
            {
                "status": ExtractionStatus.REVIEWED if finalize else ExtractionStatus.IN_REVIEW,
                "review_progress.decisions": [*review.decisions, *records],
                "review_progress.reviewed_count": review.reviewed_count + processed,
                "review_progress.last_reviewed_at": datetime.now(timezone.utc),
                "review_progress.is_draft": not finalize,
            },
        )
        logger.info(f"Recorded {len(records)} review decisions on session {session_id}")
