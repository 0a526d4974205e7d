"""
Test data builders.

Plain helpers (not fixtures) for building extracted concepts, similarity
matches and database rows. Row helpers commit so that every test starts from
persisted state, the same as the services see in production.
"""

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from conceptlab.db.models import Concept, ConceptProgress, Course, CourseConcept
from conceptlab.enums import ConceptCategory, DifficultyLevel
from conceptlab.models.concepts import ExtractedConcept, SimilarityMatch


# =============================================================================
# Pydantic builders
# =============================================================================


def make_extracted(
    name: str,
    category: ConceptCategory = ConceptCategory.VOCABULARY,
    confidence: float = 0.9,
    **kwargs: Any,
) -> ExtractedConcept:
    """Build an ExtractedConcept with sensible defaults."""
    data = {
        "name": name,
        "category": category,
        "description": f"Description of {name}",
        "examples": [f"Example with {name}"],
        "source_content": f"Source excerpt for {name}",
        "confidence": confidence,
        "suggested_difficulty": DifficultyLevel.A2,
    }
    data.update(kwargs)
    return ExtractedConcept(**data)


def make_match(concept_id: str, name: str, similarity: float = 0.8) -> SimilarityMatch:
    return SimilarityMatch(
        concept_id=concept_id,
        name=name,
        category=ConceptCategory.VOCABULARY,
        similarity=similarity,
        merge_score=similarity,
    )


# =============================================================================
# Database rows
# =============================================================================


async def create_course(
    db: AsyncSession,
    course_id: int = 1,
    keywords: Optional[list[str]] = None,
    notes: str = "Telling time in Polish uses ordinal numbers.",
    practice: str = "Ćwiczenie: Która jest godzina? Jest kwadrans po trzeciej.",
    homework: Optional[str] = None,
    new_words: Optional[list[str]] = None,
) -> Course:
    course = Course(
        course_id=course_id,
        keywords=keywords if keywords is not None else ["kwadrans, pół"],
        notes=notes,
        practice=practice,
        homework=homework,
        new_words=new_words if new_words is not None else ["kwadrans", "pół"],
    )
    db.add(course)
    await db.commit()
    return course


async def create_concept(
    db: AsyncSession,
    name: str,
    category: ConceptCategory = ConceptCategory.VOCABULARY,
    **kwargs: Any,
) -> Concept:
    data = {
        "name": name,
        "category": category.value,
        "description": f"Description of {name}",
        "examples": [],
        "tags": [],
        "created_from": [],
        "confidence": 0.7,
    }
    data.update(kwargs)
    concept = Concept(**data)
    db.add(concept)
    await db.commit()
    await db.refresh(concept)
    return concept


async def create_link(
    db: AsyncSession,
    concept_id: str,
    course_id: int,
    confidence: float = 0.5,
    **kwargs: Any,
) -> CourseConcept:
    link = CourseConcept(
        concept_id=concept_id, course_id=course_id, confidence=confidence, **kwargs
    )
    db.add(link)
    await db.commit()
    return link


async def create_progress(
    db: AsyncSession, concept_id: str, user_id: str, **kwargs: Any
) -> ConceptProgress:
    progress = ConceptProgress(concept_id=concept_id, user_id=user_id, **kwargs)
    db.add(progress)
    await db.commit()
    return progress
