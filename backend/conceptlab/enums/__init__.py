"""
Centralized enum definitions for the application.

All enums are organized by domain:
- concepts.py: Concept categories, difficulty levels, duplicate match types
- extraction.py: Chunk types, session statuses and phases, review actions

Usage:
    from conceptlab.enums import ConceptCategory, ExtractionStatus

    # Or import from specific module
    from conceptlab.enums.extraction import ReviewAction
"""

from conceptlab.enums.concepts import (
    ConceptCategory,
    DifficultyLevel,
    DuplicateMatchType,
    TagSource,
)
from conceptlab.enums.extraction import (
    ACTIVE_EXTRACTION_STATUSES,
    REVIEWABLE_EXTRACTION_STATUSES,
    ChunkType,
    CourseExtractionStatus,
    ExtractionPhase,
    ExtractionStatus,
    LLMOperation,
    ReviewAction,
)

__all__ = [
    # Concepts
    "ConceptCategory",
    "DifficultyLevel",
    "DuplicateMatchType",
    "TagSource",
    # Extraction
    "ACTIVE_EXTRACTION_STATUSES",
    "REVIEWABLE_EXTRACTION_STATUSES",
    "ChunkType",
    "CourseExtractionStatus",
    "ExtractionPhase",
    "ExtractionStatus",
    "LLMOperation",
    "ReviewAction",
]
