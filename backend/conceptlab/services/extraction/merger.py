"""
Concept Merger

Consolidates concepts. Two entry points:

- merge_extracted_into: fold an extracted candidate (plus optional reviewer
  material) into an existing concept.
- merge_existing_concepts: fold N active concepts into a target, moving
  their course links and learner progress onto the target and archiving the
  sources with a merged_into back-reference.

Aggregation rules:
- examples, tags and created_from are de-duplicated unions (order kept,
  blanks dropped)
- confidence is the maximum across inputs
- descriptions are labelled and concatenated when they differ

Every write of a merge happens in one transaction: either the target update,
link transfer, progress transfer and source archival all land, or none do.

Usage:
    from conceptlab.services.extraction.merger import ConceptMerger

    merger = ConceptMerger(db)
    merged = await merger.merge_existing_concepts(target_id, [source_a, source_b])
    preview = await merger.preview_merge(target_id, source_ids=[source_a])
"""

import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timezone
from typing import Any, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conceptlab.config.extraction import ExtractionSettings, extraction_settings
from conceptlab.db.models import Concept, ConceptProgress, CourseConcept, ensure_utc
from conceptlab.enums import ConceptCategory
from conceptlab.errors import ConceptNotFoundError, MergeValidationError
from conceptlab.models.concepts import (
    ConceptRead,
    ConceptUpdate,
    ExtractedConcept,
    MergeExtraData,
    MergePreview,
    MergeValidationResult,
)
from conceptlab.services.extraction.concept_manager import upsert_course_link
from conceptlab.services.extraction.duplicates import DuplicationDetector

logger = logging.getLogger(__name__)

ADDITIONAL_DESCRIPTION_SEPARATOR = "\n\nAdditional: "
MERGED_FROM_HEADER = "\n\nMerged from:\n"

CATEGORY_MIX_ERROR = (
    "Cannot merge Grammar and Vocabulary concepts.\n\n"
    "These represent different types of learning content and should remain separate. "
    "Please select concepts from the same category."
)

ConceptLike = Union[Concept, ConceptRead]


# =============================================================================
# Aggregation helpers
# =============================================================================


def unique_union(*lists: Optional[Iterable[str]]) -> list[str]:
    """Order-preserving union of string lists, dropping blanks."""
    seen: set[str] = set()
    result = []
    for items in lists:
        for item in items or []:
            if not isinstance(item, str) or not item.strip() or item in seen:
                continue
            seen.add(item)
            result.append(item)
    return result


def combine_descriptions(descriptions: Sequence[Optional[str]]) -> str:
    """First description, followed by the distinct others as a bulleted list."""
    distinct = unique_union([d.strip() for d in descriptions if d])
    if not distinct:
        return ""
    if len(distinct) == 1:
        return distinct[0]
    return distinct[0] + MERGED_FROM_HEADER + "\n".join(f"• {d}" for d in distinct[1:])


def validate_merge_compatibility(concepts: Sequence[ConceptLike]) -> MergeValidationResult:
    """
    Check whether a set of concepts may be merged together.

    Requires at least two concepts, all active, never mixing grammar with
    vocabulary.
    """
    if len(concepts) < 2:
        return MergeValidationResult(
            is_valid=False,
            error="At least 2 concepts must be selected for merging.",
            error_type="insufficient_concepts",
        )

    inactive = [c for c in concepts if not c.is_active]
    if inactive:
        return MergeValidationResult(
            is_valid=False,
            error=f"Cannot merge inactive concepts: {', '.join(c.name for c in inactive)}",
            error_type="inactive_concepts",
        )

    categories = {ConceptCategory(c.category) for c in concepts}
    if len(categories) > 1:
        return MergeValidationResult(
            is_valid=False,
            error=CATEGORY_MIX_ERROR,
            error_type="category_incompatible",
        )

    return MergeValidationResult(is_valid=True)


def aggregate_extracted(
    target: ConceptLike,
    extracted: ExtractedConcept,
    extra: Optional[MergeExtraData] = None,
    course_id: Optional[int] = None,
) -> dict[str, Any]:
    """Field values of target after folding in an extracted concept."""
    extra = extra or MergeExtraData()

    description = target.description or ""
    if extra.description and extra.description.strip() and extra.description != description:
        description = ADDITIONAL_DESCRIPTION_SEPARATOR.join(
            d for d in (description, extra.description) if d and d.strip()
        )

    return {
        "examples": unique_union(target.examples, extracted.examples, extra.examples),
        "tags": unique_union(
            target.tags, [t.tag for t in extracted.suggested_tags], extra.tags
        ),
        "description": description,
        "confidence": max(target.confidence, extracted.confidence),
        "created_from": unique_union(
            target.created_from, [str(course_id)] if course_id is not None else []
        ),
    }


def aggregate_existing(
    target: ConceptLike,
    sources: Sequence[ConceptLike],
    final_data: Optional[ConceptUpdate] = None,
    extra: Optional[MergeExtraData] = None,
) -> dict[str, Any]:
    """
    Field values of target after merging sources into it.

    Scalars supplied in final_data (name, category, description, difficulty,
    confidence) replace the computed values. Lists supplied in final_data
    (examples, tags, created_from) are unioned with the computed lists.
    """
    extra = extra or MergeExtraData()
    everything = [target, *sources]

    values: dict[str, Any] = {
        "examples": unique_union(*(c.examples for c in everything), extra.examples),
        "tags": unique_union(*(c.tags for c in everything), extra.tags),
        "description": combine_descriptions(
            [c.description for c in everything] + [extra.description]
        ),
        "confidence": max(c.confidence for c in everything),
        "created_from": unique_union(*(c.created_from for c in everything)),
    }

    if final_data is None:
        return values

    given = final_data.model_dump(mode="json", exclude_unset=True)
    for field in ("examples", "tags", "created_from"):
        if given.get(field):
            values[field] = unique_union(values[field], given[field])
    for field in ("name", "category", "description", "difficulty", "confidence"):
        if given.get(field) is not None:
            values[field] = given[field]
    for field in ("prerequisites", "related_concepts"):
        if given.get(field) is not None:
            values[field] = given[field]

    return values


# =============================================================================
# Merger
# =============================================================================


class ConceptMerger:
    """
    Merge engine bound to one database session.

    Args:
        db: Async database session
        on_change: Called after a committed merge (e.g. index cache invalidation)
        config: Extraction settings
    """

    def __init__(
        self,
        db: AsyncSession,
        on_change: Optional[Callable[[], None]] = None,
        config: Optional[ExtractionSettings] = None,
    ):
        self.db = db
        self.on_change = on_change
        self.config = config or extraction_settings
        self.detector = DuplicationDetector(db)

    def _notify_change(self) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change()
        except Exception as e:
            logger.error(f"Post-merge change hook failed: {e}")

    async def _get_active(self, concept_id: str) -> Concept:
        concept = await self.db.get(Concept, concept_id)
        if concept is None or not concept.is_active:
            raise ConceptNotFoundError(f"Target concept with ID {concept_id} not found")
        return concept

    async def _load_concepts(self, concept_ids: Sequence[str]) -> dict[str, Concept]:
        result = await self.db.execute(select(Concept).where(Concept.id.in_(concept_ids)))
        return {c.id: c for c in result.scalars()}

    # =========================================================================
    # Extracted -> existing
    # =========================================================================

    async def merge_extracted_into(
        self,
        target_id: str,
        extracted: ExtractedConcept,
        extra: Optional[MergeExtraData] = None,
        course_id: Optional[int] = None,
    ) -> ConceptRead:
        """
        Fold an extracted concept into an existing active concept.

        When course_id is given the course is linked to the target using the
        extracted concept's confidence and source excerpt.

        Raises:
            ConceptNotFoundError: If the target is missing or archived
        """
        target = await self._get_active(target_id)
        values = aggregate_extracted(target, extracted, extra, course_id)

        for field, value in values.items():
            setattr(target, field, value)
        target.last_updated = datetime.now(timezone.utc)

        if course_id is not None:
            await upsert_course_link(
                self.db, target.id, course_id, extracted.confidence, extracted.source_content
            )

        await self.db.commit()
        await self.db.refresh(target)

        logger.info(f"Merged extracted concept '{extracted.name}' into '{target.name}' ({target.id})")
        self._notify_change()
        return ConceptRead.model_validate(target)

    # =========================================================================
    # Existing -> existing
    # =========================================================================

    async def _validate_existing_merge(
        self, target_id: str, source_ids: Sequence[str]
    ) -> tuple[Concept, list[Concept]]:
        if not target_id or not source_ids:
            raise MergeValidationError("Target concept ID and source concept IDs are required")
        if target_id in source_ids:
            raise MergeValidationError("Cannot merge a concept with itself")

        ids = [target_id, *dict.fromkeys(source_ids)]
        found = await self._load_concepts(ids)
        missing = [i for i in ids if i not in found]
        if missing:
            raise ConceptNotFoundError(f"Concepts not found: {', '.join(missing)}")

        concepts = [found[i] for i in ids]
        validation = validate_merge_compatibility(concepts)
        if not validation.is_valid:
            raise MergeValidationError(
                validation.error, details={"error_type": validation.error_type}
            )

        return concepts[0], concepts[1:]

    async def merge_existing_concepts(
        self,
        target_id: str,
        source_ids: Sequence[str],
        final_data: Optional[ConceptUpdate] = None,
        extra: Optional[MergeExtraData] = None,
    ) -> ConceptRead:
        """
        Merge source concepts into target.

        Course links and learner progress move to the target, and the sources
        are archived with merged_into set. Nothing is written unless every step
        succeeds.

        Args:
            target_id: Concept that survives
            source_ids: Concepts folded into the target
            final_data: Caller-edited final values for the target
            extra: Additional examples, description and tags

        Raises:
            ConceptNotFoundError: If any concept does not exist
            MergeValidationError: Self-merge, inactive concepts, mixed
                categories, or a final name that collides with another concept
        """
        target, sources = await self._validate_existing_merge(target_id, source_ids)
        values = aggregate_existing(target, sources, final_data, extra)
        merge_ids = {target.id, *(s.id for s in sources)}

        name = values.get("name", target.name)
        category = ConceptCategory(values.get("category", target.category))
        if name != target.name or category.value != target.category:
            collision = await self.detector.find_exact_duplicate(name, category, exclude_ids=merge_ids)
            if collision:
                raise MergeValidationError(
                    f'Concept "{name}" already exists in category "{category.value}"',
                    details={"existing_id": collision.concept.id},
                )

        try:
            now = datetime.now(timezone.utc)
            for field, value in values.items():
                setattr(target, field, value)
            target.last_updated = now

            for source in sources:
                links = await self._transfer_course_links(source.id, target.id)
                progress = await self._transfer_progress(source.id, target.id)
                source.is_active = False
                source.merged_into = target.id
                source.last_updated = now
                logger.debug(
                    f"Moved {links} course link(s) and {progress} progress record(s) "
                    f"from {source.id} to {target.id}"
                )

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(target)
        logger.info(
            f"Merged {len(sources)} concept(s) into '{target.name}' ({target.id}): "
            f"{[s.id for s in sources]}"
        )
        self._notify_change()
        return ConceptRead.model_validate(target)

    async def _transfer_course_links(self, source_id: str, target_id: str) -> int:
        """Re-point active course links of source onto target; deactivate source links."""
        result = await self.db.execute(
            select(CourseConcept).where(
                CourseConcept.concept_id == source_id,
                CourseConcept.is_active.is_(True),
            )
        )
        links = list(result.scalars())

        for link in links:
            await upsert_course_link(
                self.db,
                target_id,
                link.course_id,
                max(link.confidence, self.config.MERGED_LINK_MIN_CONFIDENCE),
                f"Merged from {source_id}: {link.source_content}",
            )

        for link in links:
            link.is_active = False
        await self.db.flush()
        return len(links)

    async def _transfer_progress(self, source_id: str, target_id: str) -> int:
        """Merge or move every learner's progress on source onto target."""
        result = await self.db.execute(
            select(ConceptProgress).where(ConceptProgress.concept_id == source_id)
        )
        records = list(result.scalars())

        for record in records:
            existing = (
                await self.db.execute(
                    select(ConceptProgress).where(
                        ConceptProgress.concept_id == target_id,
                        ConceptProgress.user_id == record.user_id,
                    )
                )
            ).scalar_one_or_none()

            if existing is None:
                record.concept_id = target_id
            else:
                merge_progress_into(existing, record)
                await self.db.delete(record)
            await self.db.flush()

        return len(records)

    # =========================================================================
    # Preview
    # =========================================================================

    async def preview_merge(
        self,
        target_id: str,
        source_ids: Optional[Sequence[str]] = None,
        extracted: Optional[ExtractedConcept] = None,
        extra: Optional[MergeExtraData] = None,
        final_data: Optional[ConceptUpdate] = None,
    ) -> MergePreview:
        """
        Compute the outcome of a merge without writing anything.

        Affected courses and learners are those linked to (or holding progress
        on) the target or any source.

        Raises:
            ConceptNotFoundError: If the target or a source does not exist
            MergeValidationError: If the sources cannot be merged into the target
        """
        source_ids = list(source_ids or [])
        if source_ids:
            target, sources = await self._validate_existing_merge(target_id, source_ids)
            values = aggregate_existing(target, sources, final_data, extra)
        else:
            target = await self._get_active(target_id)
            sources = []
            values = (
                aggregate_extracted(target, extracted, extra)
                if extracted
                else aggregate_existing(target, [], final_data, extra)
            )

        involved = [target.id, *(s.id for s in sources)]
        courses = await self.db.execute(
            select(CourseConcept.course_id)
            .where(CourseConcept.concept_id.in_(involved), CourseConcept.is_active.is_(True))
            .distinct()
        )
        users = await self.db.execute(
            select(ConceptProgress.user_id)
            .where(ConceptProgress.concept_id.in_(involved))
            .distinct()
        )

        return MergePreview(
            target_concept=ConceptRead.model_validate(target),
            source_concepts=[ConceptRead.model_validate(s) for s in sources],
            extracted_concept=extracted,
            examples=values["examples"],
            tags=values["tags"],
            description=values["description"],
            confidence=values["confidence"],
            created_from=values["created_from"],
            affected_courses=sorted(courses.scalars()),
            affected_users=sorted(users.scalars()),
        )


def _latest(a: Optional[datetime], b: Optional[datetime]) -> Optional[datetime]:
    a, b = ensure_utc(a), ensure_utc(b)
    if a is None or b is None:
        return a or b
    return max(a, b)


def _earliest(a: Optional[datetime], b: Optional[datetime]) -> Optional[datetime]:
    a, b = ensure_utc(a), ensure_utc(b)
    if a is None or b is None:
        return a or b
    return min(a, b)


def merge_progress_into(target: ConceptProgress, source: ConceptProgress) -> None:
    """
    Combine a learner's progress on two concepts into target.

    Attempts are summed; the best streak, the latest review, the sooner next
    review, the easier difficulty and the longer interval are kept.
    """
    target.total_attempts = (target.total_attempts or 0) + (source.total_attempts or 0)
    target.correct_attempts = (target.correct_attempts or 0) + (source.correct_attempts or 0)
    target.streak = max(target.streak or 0, source.streak or 0)
    target.last_reviewed = _latest(target.last_reviewed, source.last_reviewed)
    target.next_review = _earliest(target.next_review, source.next_review)
    target.difficulty = min(target.difficulty, source.difficulty)
    target.interval = max(target.interval, source.interval)
