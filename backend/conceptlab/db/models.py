"""
SQLAlchemy Database Models

These models persist courses, concepts, their course links and learner
progress, and extraction sessions.

ARCHITECTURE NOTE:
    This file contains SQLALCHEMY models for database persistence.
    The corresponding Pydantic models live in conceptlab/models/.

    Data flows: LLM Output → Pydantic → Orchestrator → SQLAlchemy → Database

    Generic JSON columns are used instead of PostgreSQL JSONB/ARRAY so the
    schema also runs on SQLite.

Tables:
- courses: Course source material and denormalized extraction status
- concepts: Durable grammar/vocabulary concepts (never hard-deleted)
- course_concepts: Links between concepts and the courses they came from
- concept_progress: Per-learner practice progress on a concept
- extraction_sessions: Resumable extraction workflow state
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, validates

from conceptlab.db.base import Base
from conceptlab.enums import CourseExtractionStatus, DifficultyLevel


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def concept_name_key(name: str) -> str:
    """Case-folded, trimmed concept name used for duplicate lookups."""
    return (name or "").strip().casefold()


class Course(Base):
    """
    Course source material.

    Attributes:
        course_id: Primary key (externally assigned course number)
        keywords: Keyword strings
        notes: Free-text lesson notes
        practice: Practice transcript
        homework: Optional homework text
        new_words: New vocabulary introduced in the lesson
        concept_extraction_status: Denormalized extraction status
        concept_extraction_date: When extraction last completed
        extracted_concepts: Names of concepts from the last extraction
    """

    __tablename__ = "courses"

    course_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    keywords: Mapped[list] = mapped_column(JSON, default=list)
    notes: Mapped[str] = mapped_column(Text, default="")
    practice: Mapped[str] = mapped_column(Text, default="")
    homework: Mapped[Optional[str]] = mapped_column(Text)
    new_words: Mapped[list] = mapped_column(JSON, default=list)

    concept_extraction_status: Mapped[str] = mapped_column(
        String(32), default=CourseExtractionStatus.NOT_EXTRACTED.value
    )
    concept_extraction_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True)
    )
    extracted_concepts: Mapped[list] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )


class Concept(Base):
    """
    A durable unit of grammar or vocabulary knowledge.

    Concepts are never hard-deleted: superseded concepts are archived
    (is_active=False) and point at the concept they were merged into.
    Within active concepts, (name_key, category) is unique; the duplication
    detector enforces this before every create/rename.

    Attributes:
        id: Primary key UUID string
        name: Display name
        name_key: Case-folded trimmed name, kept in sync with name
        category: grammar or vocabulary
        description: Explanation of the concept
        examples: Example strings
        difficulty: CEFR level A1..C2
        confidence: Confidence score in [0, 1]
        tags: Tag strings
        prerequisites: Ids of prerequisite concepts
        related_concepts: Ids of related concepts
        created_from: Originating course ids (as strings)
        is_active: False once archived
        merged_into: Id of the concept this one was merged into
        last_updated: Last modification time
    """

    __tablename__ = "concepts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, default="")
    examples: Mapped[list] = mapped_column(JSON, default=list)
    difficulty: Mapped[str] = mapped_column(String(8), default=DifficultyLevel.B1.value)
    confidence: Mapped[float] = mapped_column(Float, default=1.0)
    tags: Mapped[list] = mapped_column(JSON, default=list)
    prerequisites: Mapped[list] = mapped_column(JSON, default=list)
    related_concepts: Mapped[list] = mapped_column(JSON, default=list)
    created_from: Mapped[list] = mapped_column(JSON, default=list)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    merged_into: Mapped[Optional[str]] = mapped_column(String(36))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )

    @validates("name")
    def _sync_name_key(self, key: str, value: str) -> str:
        self.name_key = concept_name_key(value)
        return value


class CourseConcept(Base):
    """
    Link between a concept and a course it was found in.

    Attributes:
        concept_id: Linked concept
        course_id: Linked course
        confidence: Link confidence in [0, 1]
        source_content: Where in the course the concept appeared
        is_active: False once superseded (e.g. after a merge)
        extracted_date: When the link was created or last refreshed
    """

    __tablename__ = "course_concepts"
    __table_args__ = (UniqueConstraint("concept_id", "course_id", name="uq_course_concept"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    concept_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    course_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    confidence: Mapped[float] = mapped_column(Float, default=1.0)
    source_content: Mapped[str] = mapped_column(Text, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    extracted_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)


class ConceptProgress(Base):
    """
    A learner's practice progress on one concept.

    Owned by the practice subsystem; the merger moves these records when
    concepts are consolidated.

    Attributes:
        concept_id: Concept being practiced
        user_id: Learner identifier
        total_attempts: Number of answers given
        correct_attempts: Number of correct answers
        streak: Current run of correct answers
        last_reviewed: Time of the last answer
        next_review: When the concept is next due
        difficulty: Scheduler ease value (lower is easier)
        interval: Current review interval in days
    """

    __tablename__ = "concept_progress"
    __table_args__ = (UniqueConstraint("concept_id", "user_id", name="uq_concept_progress"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    concept_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    total_attempts: Mapped[int] = mapped_column(Integer, default=0)
    correct_attempts: Mapped[int] = mapped_column(Integer, default=0)
    streak: Mapped[int] = mapped_column(Integer, default=0)
    last_reviewed: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    next_review: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    difficulty: Mapped[float] = mapped_column(Float, default=2.5)
    interval: Mapped[int] = mapped_column(Integer, default=1)


class ExtractionSession(Base):
    """
    State of one course extraction.

    The progress, review and metadata records are JSON documents whose
    shapes are defined in conceptlab/models/extraction.py.

    active_course_id is unique and holds the course id only while the session
    is in an active status (analyzing, extracting, similarity_checking). This
    makes "at most one active session per course" a database constraint
    rather than a read-then-write check.

    Attributes:
        id: Primary key UUID string
        course_id: Course being extracted
        active_course_id: course_id while active, otherwise NULL
        course_name: Display name
        status: ExtractionStatus value
        extraction_date: When the session started
        extracted_concepts: ExtractedConcept documents accumulated so far
        similarity_matches: Position in extracted_concepts (as a string) -> SimilarityMatch documents
        extraction_progress: ExtractionProgress document
        review_progress: ReviewProgress document
        extraction_metadata: ExtractionMetadata document
    """

    __tablename__ = "extraction_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    course_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    active_course_id: Mapped[Optional[int]] = mapped_column(Integer, unique=True)
    course_name: Mapped[str] = mapped_column(String(512), default="")
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    extraction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    extracted_concepts: Mapped[list] = mapped_column(JSON, default=list)
    similarity_matches: Mapped[dict] = mapped_column(JSON, default=dict)
    extraction_progress: Mapped[dict] = mapped_column(JSON, default=dict)
    review_progress: Mapped[dict] = mapped_column(JSON, default=dict)
    extraction_metadata: Mapped[dict] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )
