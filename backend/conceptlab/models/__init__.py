"""Pydantic models for the application."""

from conceptlab.models.concepts import (
    ConceptCreate,
    ConceptIndexEntry,
    ConceptRead,
    ConceptUpdate,
    DuplicationCheckResult,
    DuplicationReport,
    ExtractedConcept,
    MergeExtraData,
    MergePreview,
    SimilarityMatch,
    SuggestedTag,
)
from conceptlab.models.extraction import (
    ChunkPlan,
    ContentChunk,
    CourseContent,
    ExtractionInput,
    ExtractionProgress,
    ExtractionResult,
    ExtractionStatistics,
    ReviewDecision,
    ReviewResult,
    SessionStatus,
)

__all__ = [
    # Concepts
    "ConceptCreate",
    "ConceptIndexEntry",
    "ConceptRead",
    "ConceptUpdate",
    "DuplicationCheckResult",
    "DuplicationReport",
    "ExtractedConcept",
    "MergeExtraData",
    "MergePreview",
    "SimilarityMatch",
    "SuggestedTag",
    # Extraction
    "ChunkPlan",
    "ContentChunk",
    "CourseContent",
    "ExtractionInput",
    "ExtractionProgress",
    "ExtractionResult",
    "ExtractionStatistics",
    "ReviewDecision",
    "ReviewResult",
    "SessionStatus",
]
