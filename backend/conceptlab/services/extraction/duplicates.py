"""
Duplication Detector

Name-collision checks between candidate concepts and active concepts.

A duplicate is a concept with the same name (trimmed, case-insensitive) in
the same category. This is deliberately stricter than similarity scoring: a
concept with a near-identical description is not a duplicate unless its name
matches. Matches whose case is identical are reported as "exact", the rest as
"case_insensitive".

Usage:
    from conceptlab.services.extraction.duplicates import DuplicationDetector

    detector = DuplicationDetector(db)
    result = await detector.check_for_duplicates(extracted_concepts)
    if result.has_duplicates:
        print(result.duplicate_concept_names)
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conceptlab.db.models import Concept, concept_name_key
from conceptlab.enums import ConceptCategory, DuplicateMatchType
from conceptlab.models.concepts import (
    ConceptRead,
    CreationValidationResult,
    DuplicateDetail,
    DuplicateMatch,
    DuplicationCheckResult,
    DuplicationReport,
    ExactDuplicate,
    ExtractedConcept,
)

logger = logging.getLogger(__name__)

RECOMMENDED_ACTIONS = {
    DuplicateMatchType.EXACT: "Edit the concept name to make it unique",
    DuplicateMatchType.CASE_INSENSITIVE: "Consider if this is the same concept or edit the name",
}


class DuplicationDetector:
    """
    Exact and case-insensitive name-collision checks within a category.

    Read-only: never writes to the database.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_exact_duplicate(
        self,
        name: str,
        category: ConceptCategory,
        filter_category: Optional[ConceptCategory] = None,
        exclude_ids: Optional[set[str]] = None,
    ) -> Optional[ExactDuplicate]:
        """
        Find an active concept whose name collides with name.

        Args:
            name: Candidate name (surrounding whitespace ignored)
            category: Category to search within
            filter_category: Overrides category when given
            exclude_ids: Concept ids to ignore (e.g. the concept being renamed)

        Returns:
            The colliding concept and match type, or None
        """
        trimmed = (name or "").strip()
        if not trimmed:
            return None

        search_category = ConceptCategory(filter_category or category)
        stmt = select(Concept).where(
            Concept.name_key == concept_name_key(trimmed),
            Concept.category == search_category.value,
            Concept.is_active.is_(True),
        )
        if exclude_ids:
            stmt = stmt.where(Concept.id.not_in(exclude_ids))

        candidates = list((await self.db.execute(stmt.order_by(Concept.created_at))).scalars())
        if not candidates:
            return None

        # Prefer the case-identical concept if both variants exist
        for concept in candidates:
            if concept.name.strip() == trimmed:
                return ExactDuplicate(
                    concept=ConceptRead.model_validate(concept),
                    match_type=DuplicateMatchType.EXACT,
                )

        return ExactDuplicate(
            concept=ConceptRead.model_validate(candidates[0]),
            match_type=DuplicateMatchType.CASE_INSENSITIVE,
        )

    async def is_duplicate(self, name: str, category: ConceptCategory) -> bool:
        """Whether name collides with an active concept in category."""
        return await self.find_exact_duplicate(name, category) is not None

    async def check_for_duplicates(
        self,
        extracted_concepts: list[ExtractedConcept],
        filter_category: Optional[ConceptCategory] = None,
    ) -> DuplicationCheckResult:
        """
        Check every candidate for a name collision.

        Args:
            extracted_concepts: Candidates to check
            filter_category: Search this category instead of each candidate's own

        Returns:
            DuplicationCheckResult listing every colliding candidate
        """
        duplicates: list[DuplicateMatch] = []

        for extracted in extracted_concepts:
            duplicate = await self.find_exact_duplicate(
                extracted.name, extracted.category, filter_category
            )
            if duplicate:
                duplicates.append(
                    DuplicateMatch(
                        extracted_concept_name=extracted.name,
                        existing_concept=duplicate.concept,
                        duplicate_type=duplicate.match_type,
                    )
                )

        if duplicates:
            logger.info(
                f"Found {len(duplicates)} duplicate(s) among {len(extracted_concepts)} concepts"
            )

        return DuplicationCheckResult(
            has_duplicates=bool(duplicates),
            duplicates=duplicates,
            duplicate_concept_names=[d.extracted_concept_name for d in duplicates],
        )

    async def get_duplicate_concept_names(self, extracted_concepts: list[ExtractedConcept]) -> list[str]:
        result = await self.check_for_duplicates(extracted_concepts)
        return result.duplicate_concept_names

    async def validate_concepts_for_creation(
        self, extracted_concepts: list[ExtractedConcept]
    ) -> CreationValidationResult:
        """Reject the whole batch when any candidate collides."""
        result = await self.check_for_duplicates(extracted_concepts)

        if result.has_duplicates:
            names = ", ".join(result.duplicate_concept_names)
            return CreationValidationResult(
                is_valid=False,
                message=(
                    f"Cannot create concepts due to duplicates: {names}. "
                    "Please review and edit these concepts to have unique names."
                ),
                duplicates=result.duplicates,
            )

        return CreationValidationResult(
            is_valid=True,
            message="All concepts are valid for creation",
        )

    async def get_duplication_report(
        self, extracted_concepts: list[ExtractedConcept]
    ) -> DuplicationReport:
        """Per-candidate duplicate report suitable for display."""
        result = await self.check_for_duplicates(extracted_concepts)

        details = [
            DuplicateDetail(
                extracted_name=d.extracted_concept_name,
                existing_name=d.existing_concept.name,
                existing_id=d.existing_concept.id,
                existing_category=d.existing_concept.category,
                duplicate_type=d.duplicate_type,
                recommended_action=RECOMMENDED_ACTIONS[d.duplicate_type],
            )
            for d in result.duplicates
        ]

        return DuplicationReport(
            total_concepts=len(extracted_concepts),
            duplicate_count=len(details),
            has_duplicates=result.has_duplicates,
            duplicate_names=result.duplicate_concept_names,
            duplicate_details=details,
        )

    async def get_creatable_concepts(
        self, extracted_concepts: list[ExtractedConcept]
    ) -> list[ExtractedConcept]:
        """Candidates that do not collide with an active concept."""
        names = set(await self.get_duplicate_concept_names(extracted_concepts))
        return [c for c in extracted_concepts if c.name not in names]

    async def get_duplicate_concepts(
        self, extracted_concepts: list[ExtractedConcept]
    ) -> list[ExtractedConcept]:
        """Candidates that collide with an active concept."""
        names = set(await self.get_duplicate_concept_names(extracted_concepts))
        return [c for c in extracted_concepts if c.name in names]
