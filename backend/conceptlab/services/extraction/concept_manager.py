"""
Concept Manager

Store operations for durable concepts and their course links: create (with
duplicate protection), create-or-find, update, lookups, the cached concept
index and LLM-backed similarity search.

Every create or update invalidates the concept index cache. A failure to
invalidate is logged and does not fail the write.

Usage:
    from conceptlab.services.extraction.concept_manager import ConceptManager

    manager = ConceptManager(db, gateway=gateway, index_cache=cache)
    concept = await manager.create_concept(ConceptCreate(...))
    await manager.link_concept_to_course(concept.id, course_id=5, confidence=0.9)
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conceptlab.config.extraction import ExtractionSettings, extraction_settings
from conceptlab.db.models import Concept, CourseConcept
from conceptlab.enums import ConceptCategory
from conceptlab.errors import ConceptNotFoundError, ConceptValidationError
from conceptlab.models.concepts import (
    ConceptCreate,
    ConceptIndexEntry,
    ConceptRead,
    ConceptUpdate,
    ExtractedConcept,
    SimilarityMatch,
)
from conceptlab.services.extraction.duplicates import DuplicationDetector
from conceptlab.services.extraction.gateway import LLMGateway, validate_confidence
from conceptlab.services.extraction.index_cache import ConceptIndexCache

logger = logging.getLogger(__name__)


def concept_create_from_extracted(
    extracted: ExtractedConcept,
    course_id: Optional[int] = None,
    overrides: Optional[dict] = None,
) -> ConceptCreate:
    """
    Build a ConceptCreate payload from an extracted concept.

    Args:
        extracted: The extracted concept
        course_id: Course the concept came from, recorded as provenance
        overrides: Field values that replace the extracted ones (e.g. reviewer edits)

    Raises:
        ConceptValidationError: If the overrides do not form a valid concept
    """
    data = {
        "name": extracted.name,
        "category": extracted.category,
        "description": extracted.description,
        "examples": list(extracted.examples),
        "difficulty": extracted.suggested_difficulty,
        "confidence": extracted.confidence,
        "tags": [tag.tag for tag in extracted.suggested_tags],
        "created_from": [str(course_id)] if course_id is not None else [],
    }
    for key, value in (overrides or {}).items():
        if key in ConceptCreate.model_fields and value is not None:
            data[key] = value

    try:
        return ConceptCreate(**data)
    except ValueError as e:
        raise ConceptValidationError(f"Invalid concept data: {e}") from e


class ConceptManager:
    """
    Concept store operations bound to one database session.

    Args:
        db: Async database session
        gateway: LLM gateway for similarity search (created on first use if omitted)
        index_cache: Shared concept index cache; a private one backed by this
            session is created if omitted
        config: Extraction settings
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway: Optional[LLMGateway] = None,
        index_cache: Optional[ConceptIndexCache] = None,
        config: Optional[ExtractionSettings] = None,
    ):
        self.db = db
        self.config = config or extraction_settings
        self._gateway = gateway
        self.detector = DuplicationDetector(db)
        self.index_cache = index_cache or ConceptIndexCache(
            self.load_concept_index, ttl_seconds=self.config.INDEX_CACHE_TTL_SECONDS
        )

    @property
    def gateway(self) -> LLMGateway:
        if self._gateway is None:
            self._gateway = LLMGateway(config=self.config)
        return self._gateway

    def _invalidate_cache(self) -> None:
        try:
            self.index_cache.invalidate()
        except Exception as e:
            logger.error(f"Failed to invalidate concept index cache: {e}")

    # =========================================================================
    # Create / update
    # =========================================================================

    async def create_concept(
        self,
        data: ConceptCreate,
        skip_uniqueness_check: bool = False,
        commit: bool = True,
    ) -> ConceptRead:
        """
        Create a concept.

        Args:
            data: Concept payload; name, category and description are required
            skip_uniqueness_check: Return the colliding concept instead of
                raising when one exists
            commit: Commit the transaction; otherwise only flush so the caller
                can commit further writes together with this one

        Returns:
            The created concept, or the existing one when skipping the check

        Raises:
            ConceptValidationError: Missing fields, or a duplicate name in the
                category (unless skip_uniqueness_check)
        """
        if not data.name.strip() or not data.category or not data.description.strip():
            raise ConceptValidationError("Missing required fields: name, category, or description")

        existing = await self.detector.find_exact_duplicate(data.name, data.category)
        if existing:
            if skip_uniqueness_check:
                logger.debug(f"Concept '{data.name}' already exists, returning existing concept")
                return existing.concept
            raise ConceptValidationError(
                f'Concept "{data.name}" already exists in category "{ConceptCategory(data.category).value}"',
                details={"existing_id": existing.concept.id},
            )

        fields = data.model_dump(mode="json", exclude={"id"})
        fields["name"] = data.name.strip()
        concept = Concept(**fields)
        if data.id:
            concept.id = data.id

        self.db.add(concept)
        await self._save(concept, commit)

        logger.info(f"Created concept '{concept.name}' ({concept.category}) id={concept.id}")
        self._invalidate_cache()
        return ConceptRead.model_validate(concept)

    async def create_or_find_concept(
        self, data: ConceptCreate, commit: bool = True
    ) -> tuple[ConceptRead, bool]:
        """
        Return the active concept with this name and category, creating it if needed.

        When a concept already exists, the payload's provenance course ids are
        appended to it.

        Returns:
            (concept, created)
        """
        existing = await self.detector.find_exact_duplicate(data.name, data.category)
        if existing is None:
            return await self.create_concept(data, skip_uniqueness_check=True, commit=commit), True

        concept = await self.db.get(Concept, existing.concept.id)
        new_sources = [c for c in data.created_from if c not in (concept.created_from or [])]
        if new_sources:
            concept.created_from = [*(concept.created_from or []), *new_sources]
            concept.last_updated = datetime.now(timezone.utc)
            await self._save(concept, commit)
            logger.debug(f"Added provenance {new_sources} to existing concept '{concept.name}'")

        return ConceptRead.model_validate(concept), False

    async def update_concept(
        self, concept_id: str, updates: ConceptUpdate, commit: bool = True
    ) -> ConceptRead:
        """
        Apply a partial update to a concept.

        Renames and category changes are checked against other active concepts.

        Raises:
            ConceptNotFoundError: If the concept does not exist
            ConceptValidationError: If the new name/category collides or the
                name is blank
        """
        concept = await self.db.get(Concept, concept_id)
        if concept is None:
            raise ConceptNotFoundError(f"Concept with ID {concept_id} not found")

        changes = {k: v for k, v in updates.model_dump(mode="json", exclude_unset=True).items() if v is not None}

        if "name" in changes:
            changes["name"] = changes["name"].strip()
            if not changes["name"]:
                raise ConceptValidationError("Concept name cannot be empty")

        new_name = changes.get("name", concept.name)
        new_category = changes.get("category", concept.category)
        if new_name != concept.name or new_category != concept.category:
            duplicate = await self.detector.find_exact_duplicate(
                new_name, ConceptCategory(new_category), exclude_ids={concept.id}
            )
            if duplicate:
                raise ConceptValidationError(
                    "A concept with this name and category already exists",
                    details={"existing_id": duplicate.concept.id},
                )

        for field, value in changes.items():
            setattr(concept, field, value)
        concept.last_updated = datetime.now(timezone.utc)
        await self._save(concept, commit)

        logger.info(f"Updated concept {concept_id}: {sorted(changes)}")
        self._invalidate_cache()
        return ConceptRead.model_validate(concept)

    async def _save(self, concept: Concept, commit: bool) -> None:
        if commit:
            await self.db.commit()
        else:
            await self.db.flush()
        await self.db.refresh(concept)

    # =========================================================================
    # Lookups
    # =========================================================================

    async def get_concept(self, concept_id: str) -> Optional[ConceptRead]:
        concept = await self.db.get(Concept, concept_id)
        return ConceptRead.model_validate(concept) if concept else None

    async def get_active_concepts(
        self, category: Optional[ConceptCategory] = None
    ) -> list[ConceptRead]:
        """All active concepts, optionally within one category, by name."""
        stmt = select(Concept).where(Concept.is_active.is_(True))
        if category:
            stmt = stmt.where(Concept.category == ConceptCategory(category).value)
        result = await self.db.execute(stmt.order_by(Concept.name))
        return [ConceptRead.model_validate(c) for c in result.scalars()]

    async def load_concept_index(self) -> list[ConceptIndexEntry]:
        """Read the index projection of every active concept from the store."""
        stmt = (
            select(Concept.id, Concept.name, Concept.category, Concept.description, Concept.difficulty)
            .where(Concept.is_active.is_(True))
            .order_by(Concept.name)
        )
        result = await self.db.execute(stmt)
        return [ConceptIndexEntry.model_validate(dict(row._mapping)) for row in result]

    async def get_concept_index(self, force_refresh: bool = False) -> list[ConceptIndexEntry]:
        """The concept index, served from cache while fresh."""
        return await self.index_cache.get_index(force_refresh=force_refresh)

    async def find_similar_concepts(self, extracted: ExtractedConcept) -> list[SimilarityMatch]:
        """
        Ask the LLM which active concepts resemble an extracted concept.

        Returns [] without an LLM call when there are no active concepts.

        Raises:
            LLMServiceError: If the similarity call fails after retries
        """
        index = await self.get_concept_index()
        if not index:
            return []
        return await self.gateway.score_similarity(extracted, index)

    # =========================================================================
    # Course links
    # =========================================================================

    async def link_concept_to_course(
        self,
        concept_id: str,
        course_id: int,
        confidence: float = 1.0,
        source_content: str = "",
        commit: bool = True,
    ) -> None:
        """
        Create or refresh the link between a concept and a course.

        An existing link is updated and reactivated. Confidence is clamped to [0, 1].

        Raises:
            ConceptNotFoundError: If the concept does not exist
        """
        if await self.db.get(Concept, concept_id) is None:
            raise ConceptNotFoundError(f"Concept with ID {concept_id} not found")

        await upsert_course_link(self.db, concept_id, course_id, confidence, source_content)
        if commit:
            await self.db.commit()
        logger.debug(f"Linked concept {concept_id} to course {course_id}")

    async def get_concepts_for_course(self, course_id: int) -> list[ConceptRead]:
        """Active concepts with an active link to the course."""
        stmt = (
            select(Concept)
            .join(CourseConcept, CourseConcept.concept_id == Concept.id)
            .where(
                CourseConcept.course_id == course_id,
                CourseConcept.is_active.is_(True),
                Concept.is_active.is_(True),
            )
            .order_by(Concept.name)
        )
        result = await self.db.execute(stmt)
        return [ConceptRead.model_validate(c) for c in result.scalars().unique()]

    async def get_courses_for_concept(self, concept_id: str) -> list[int]:
        """Course ids actively linked to the concept, highest confidence first."""
        stmt = (
            select(CourseConcept.course_id)
            .where(CourseConcept.concept_id == concept_id, CourseConcept.is_active.is_(True))
            .order_by(CourseConcept.confidence.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())


async def upsert_course_link(
    db: AsyncSession,
    concept_id: str,
    course_id: int,
    confidence: float,
    source_content: str,
) -> CourseConcept:
    """Insert or refresh a course link without committing."""
    result = await db.execute(
        select(CourseConcept).where(
            CourseConcept.concept_id == concept_id,
            CourseConcept.course_id == course_id,
        )
    )
    link = result.scalar_one_or_none()
    if link is None:
        link = CourseConcept(concept_id=concept_id, course_id=course_id)
        db.add(link)

    link.confidence = validate_confidence(confidence)
    link.source_content = source_content or ""
    link.is_active = True
    link.extracted_date = datetime.now(timezone.utc)
    await db.flush()
    return link
