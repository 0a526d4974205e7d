"""
Concept Data Models (Pydantic)

Pydantic models for concepts as they flow through extraction, duplicate
detection and merging.

ARCHITECTURE NOTE:
    This file contains PYDANTIC models for validation and data flow.
    There is a corresponding SQLAlchemy file: conceptlab/db/models.py

    - ExtractedConcept is ephemeral: produced by the LLM, held only inside an
      extraction session until a review decision promotes or discards it.
    - ConceptRead mirrors a persisted Concept row.
    - ConceptIndexEntry is the lightweight projection used for similarity
      comparisons (no examples, tags or provenance).

Models:
- SuggestedTag: Tag proposed by the LLM for an extracted concept
- ExtractedConcept: Candidate concept produced by the LLM
- ConceptCreate / ConceptUpdate: Payloads for the concept store
- ConceptRead: Persisted concept
- ConceptIndexEntry: Cached summary of an active concept
- SimilarityMatch / MergeSuggestion: LLM judgement against an existing concept
- Duplicate* models: Results of exact-name duplicate checks
- Merge* models: Merge inputs, validation and previews
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from conceptlab.enums import (
    ConceptCategory,
    DifficultyLevel,
    DuplicateMatchType,
    TagSource,
)
from conceptlab.models.base import StrictRequest, StrictResponse


# =============================================================================
# Extracted (unpersisted) concepts
# =============================================================================


class SuggestedTag(BaseModel):
    """Tag suggested by the LLM, marked as existing vocabulary or new."""

    tag: str
    source: TagSource = TagSource.NEW
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class ExtractedConcept(BaseModel):
    """
    A candidate concept produced by the LLM for one chunk of course content.

    Every field has already been validated and defaulted by the
    gateway, so values are always within their documented domains.
    """

    name: str = Field(..., description="Concept name as proposed by the model")
    category: ConceptCategory = ConceptCategory.GRAMMAR
    description: str = ""
    examples: list[str] = Field(default_factory=list)
    source_content: str = Field(
        default="", description="Where in the course material it was found"
    )
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    suggested_difficulty: DifficultyLevel = DifficultyLevel.B1
    suggested_tags: list[SuggestedTag] = Field(default_factory=list)


# =============================================================================
# Persisted concepts
# =============================================================================


class ConceptCreate(StrictRequest):
    """Payload for creating a concept."""

    id: Optional[str] = None
    name: str
    category: ConceptCategory
    description: str = ""
    examples: list[str] = Field(default_factory=list)
    difficulty: DifficultyLevel = DifficultyLevel.B1
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    tags: list[str] = Field(default_factory=list)
    prerequisites: list[str] = Field(default_factory=list)
    related_concepts: list[str] = Field(default_factory=list)
    created_from: list[str] = Field(
        default_factory=list, description="Originating course ids"
    )


class ConceptUpdate(StrictRequest):
    """Partial update for a concept. Only fields that are set are applied."""

    name: Optional[str] = None
    category: Optional[ConceptCategory] = None
    description: Optional[str] = None
    examples: Optional[list[str]] = None
    difficulty: Optional[DifficultyLevel] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    tags: Optional[list[str]] = None
    prerequisites: Optional[list[str]] = None
    related_concepts: Optional[list[str]] = None
    created_from: Optional[list[str]] = None


class ConceptRead(StrictResponse):
    """A persisted concept."""

    id: str
    name: str
    category: ConceptCategory
    description: str = ""
    examples: list[str] = Field(default_factory=list)
    difficulty: DifficultyLevel = DifficultyLevel.B1
    confidence: float = 1.0
    tags: list[str] = Field(default_factory=list)
    prerequisites: list[str] = Field(default_factory=list)
    related_concepts: list[str] = Field(default_factory=list)
    created_from: list[str] = Field(default_factory=list)
    is_active: bool = True
    merged_into: Optional[str] = None
    last_updated: Optional[datetime] = None


class ConceptIndexEntry(StrictResponse):
    """Lightweight summary of an active concept used for comparisons."""

    id: str
    name: str
    category: ConceptCategory
    description: str = ""
    difficulty: DifficultyLevel = DifficultyLevel.B1


# =============================================================================
# Similarity
# =============================================================================


class MergeSuggestion(BaseModel):
    """Structured advice from the LLM on how a merge would look."""

    reason: str = ""
    conflicting_fields: list[str] = Field(default_factory=list)
    suggested_merged_description: Optional[str] = None


class SimilarityMatch(BaseModel):
    """An existing concept the LLM judged similar to an extracted candidate."""

    concept_id: str
    name: str
    category: ConceptCategory = ConceptCategory.GRAMMAR
    description: str = ""
    examples: list[str] = Field(default_factory=list)
    similarity: float = Field(..., ge=0.0, le=1.0)
    merge_score: float = Field(..., ge=0.0, le=1.0)
    merge_suggestion: Optional[MergeSuggestion] = None


# =============================================================================
# Duplicate detection
# =============================================================================


class ExactDuplicate(BaseModel):
    """Active concept whose name collides with a candidate name."""

    concept: ConceptRead
    match_type: DuplicateMatchType


class DuplicateMatch(BaseModel):
    """A candidate from a batch check together with the concept it collides with."""

    extracted_concept_name: str
    existing_concept: ConceptRead
    duplicate_type: DuplicateMatchType


class DuplicationCheckResult(BaseModel):
    """Outcome of checking a batch of candidates for name collisions."""

    has_duplicates: bool
    duplicates: list[DuplicateMatch] = Field(default_factory=list)
    duplicate_concept_names: list[str] = Field(default_factory=list)


class CreationValidationResult(BaseModel):
    """Whether a batch of candidates may be created as-is."""

    is_valid: bool
    message: str
    duplicates: list[DuplicateMatch] = Field(default_factory=list)


class DuplicateDetail(BaseModel):
    """One row of a duplication report, shaped for display."""

    extracted_name: str
    existing_name: str
    existing_id: str
    existing_category: ConceptCategory
    duplicate_type: DuplicateMatchType
    recommended_action: str


class DuplicationReport(BaseModel):
    """Per-concept duplicate report for a batch of candidates."""

    total_concepts: int
    duplicate_count: int
    has_duplicates: bool
    duplicate_names: list[str] = Field(default_factory=list)
    duplicate_details: list[DuplicateDetail] = Field(default_factory=list)


# =============================================================================
# Merging
# =============================================================================


class MergeExtraData(StrictRequest):
    """Additional material supplied by a reviewer when merging."""

    examples: list[str] = Field(default_factory=list)
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)


class MergeValidationResult(BaseModel):
    """Whether a set of concepts can be merged together."""

    is_valid: bool
    error: Optional[str] = None
    error_type: Optional[str] = None  # insufficient_concepts, inactive_concepts, category_incompatible


class MergePreview(BaseModel):
    """Would-be result of a merge, computed without writing anything."""

    target_concept: ConceptRead
    source_concepts: list[ConceptRead] = Field(default_factory=list)
    extracted_concept: Optional[ExtractedConcept] = None
    examples: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    description: str = ""
    confidence: float = 0.0
    created_from: list[str] = Field(default_factory=list)
    affected_courses: list[int] = Field(default_factory=list)
    affected_users: list[str] = Field(default_factory=list)
