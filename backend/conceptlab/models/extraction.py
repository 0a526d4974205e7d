"""
Extraction Session Data Models (Pydantic)

Pydantic models for the extraction workflow: course content, chunk plans,
the persisted progress record, statistics and review decisions.

ARCHITECTURE NOTE:
    The extraction session row (conceptlab/db/models.py) stores the progress,
    review and metadata records as JSON documents. These models define the
    shape of those documents; the orchestrator writes them with
    ``model_dump(mode="json")`` and updates individual sub-fields through
    dotted paths (e.g. ``extraction_progress.processed_chunks``).

Models:
- CourseContent: Course source record as read by the orchestrator
- ExtractionInput: Content sent to the LLM for one chunk
- ContentChunk / ChunkPlan: Output of the content chunker
- ExtractionProgress / ReviewProgress / ExtractionMetadata: Session documents
- ExtractionStatistics / ExtractionResult / SessionStatus: Caller-facing results
- ReviewDecision / ReviewResult: Applying reviewed concepts
- CleanupStats / CleanupResult: Session housekeeping
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from conceptlab.enums import (
    ChunkType,
    ExtractionPhase,
    ExtractionStatus,
    ReviewAction,
)
from conceptlab.models.base import StrictRequest, StrictResponse
from conceptlab.models.concepts import (
    ExtractedConcept,
    MergeExtraData,
    SimilarityMatch,
)


# =============================================================================
# Content
# =============================================================================


class CourseContent(StrictResponse):
    """Course source record: the raw material an extraction works from."""

    course_id: int
    keywords: list[str] = Field(default_factory=list)
    notes: str = ""
    practice: str = ""
    homework: Optional[str] = None
    new_words: list[str] = Field(default_factory=list)


class ExtractionInput(BaseModel):
    """Content passed to the LLM for a single extraction call."""

    keywords: list[str] = Field(default_factory=list)
    new_words: list[str] = Field(default_factory=list)
    notes: str = ""
    practice: str = ""
    homework: Optional[str] = None


class ContentChunk(BaseModel):
    """
    A typed slice of course content processed by one LLM call.

    Immutable once planned except for the processing result fields
    (processed, extracted_concepts, processed_at, processing_time_ms).
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: ChunkType
    content: str
    estimated_concepts: int = Field(default=1, ge=1)
    processed: bool = False
    extracted_concepts: list[ExtractedConcept] = Field(default_factory=list)
    processed_at: Optional[datetime] = None
    processing_time_ms: Optional[int] = None


class AnalysisMetadata(BaseModel):
    """Complexity metrics computed while planning chunks."""

    keywords_weight: float = 0.0
    notes_complexity: float = 0.0
    practice_complexity: float = 0.0
    homework_complexity: Optional[float] = None
    estimated_concept_density: float = 0.0  # Estimated concepts per 1000 chars


class ChunkPlan(BaseModel):
    """Chunking plan for one course."""

    total_content_length: int
    estimated_processing_time: int  # Seconds
    recommended_chunks: list[ContentChunk]
    analysis_metadata: AnalysisMetadata

    @property
    def estimated_concepts(self) -> int:
        """Sum of per-chunk concept estimates."""
        return sum(chunk.estimated_concepts for chunk in self.recommended_chunks)


# =============================================================================
# Session documents
# =============================================================================


class ExtractionProgress(BaseModel):
    """Progress record persisted after every unit of work."""

    phase: ExtractionPhase = ExtractionPhase.ANALYZING
    total_chunks: int = 0
    processed_chunks: int = 0
    total_concepts: int = 0  # Estimate from the chunk plan
    extracted_concepts: int = 0
    similarity_checked: int = 0
    estimated_time_remaining: int = 0  # Seconds
    current_operation: str = ""
    chunks: list[ContentChunk] = Field(default_factory=list)
    last_updated: Optional[datetime] = None
    error_message: Optional[str] = None


class ReviewProgress(BaseModel):
    """Review state of a session's extracted concepts."""

    total_concepts: int = 0
    reviewed_count: int = 0
    decisions: list[dict[str, Any]] = Field(default_factory=list)
    is_draft: bool = True
    last_reviewed_at: Optional[datetime] = None


class ExtractionStatistics(BaseModel):
    """Aggregate statistics computed when a session is finalized."""

    total_concepts: int
    high_confidence_count: int
    average_confidence: float
    processing_time: int  # Seconds of wall-clock time since the session started
    chunks_processed: int


class ExtractionMetadata(BaseModel):
    """Bookkeeping about how a session was produced."""

    llm_model: str = ""
    total_processing_time: float = 0.0  # Seconds
    extraction_confidence: float = 0.0
    source_content_length: int = 0
    statistics: Optional[ExtractionStatistics] = None


# =============================================================================
# Caller-facing results
# =============================================================================


class ExtractionResult(BaseModel):
    """Result of a completed extraction run."""

    extraction_id: str
    statistics: ExtractionStatistics
    can_proceed_to_review: bool = True


class SessionStatus(BaseModel):
    """Last known state of an extraction session."""

    session_id: str
    course_id: int
    course_name: str
    status: ExtractionStatus
    progress: ExtractionProgress
    error_message: Optional[str] = None
    statistics: Optional[ExtractionStatistics] = None
    extracted_concepts: list[ExtractedConcept] = Field(default_factory=list)
    similarity_matches: dict[str, list[SimilarityMatch]] = Field(default_factory=dict)

    def matches_for(self, position: int) -> list[SimilarityMatch]:
        """Matches for the extracted concept at position; keys are list positions."""
        return self.similarity_matches.get(str(position), [])


# =============================================================================
# Review
# =============================================================================


class ReviewMergeData(StrictRequest):
    """Merge target and extra material for a merge decision."""

    primary_concept_id: str
    additional_data: MergeExtraData = Field(default_factory=MergeExtraData)


class ReviewDecision(StrictRequest):
    """A reviewer's decision on one extracted concept."""

    action: ReviewAction
    extracted_concept: ExtractedConcept
    course_id: Optional[int] = None  # Defaults to the course being reviewed
    target_concept_id: Optional[str] = None  # Required for link
    edited_concept: Optional[dict[str, Any]] = None  # Required for edit
    merge_data: Optional[ReviewMergeData] = None  # Required for merge


class ReviewResult(BaseModel):
    """Outcome of applying a batch of review decisions."""

    success: bool = True
    processed: int = 0
    created: int = 0
    edited: int = 0
    linked: int = 0
    merged: int = 0
    manual_added: int = 0
    rejected: int = 0
    errors: list[str] = Field(default_factory=list)


# =============================================================================
# Cleanup
# =============================================================================


class CleanupStats(BaseModel):
    """Counts of sessions eligible for each cleanup rule."""

    total_sessions: int
    archived_sessions: int
    stale_sessions: int
    old_reviewed_sessions: int


class CleanupResult(BaseModel):
    """Counts of sessions touched by a full cleanup run."""

    archived_deleted: int
    stale_deleted: int
    reviewed_archived: int
