"""
Extraction-related enums.

Defines chunk types, the extraction session state machine, progress phases,
course-level extraction status, review actions and LLM operations.
"""

from enum import Enum


class ChunkType(str, Enum):
    """Kind of course content a chunk was cut from."""

    KEYWORDS = "keywords"
    NOTES = "notes"
    PRACTICE = "practice"
    HOMEWORK = "homework"


class ExtractionStatus(str, Enum):
    """
    Extraction session status.

    analyzing -> extracting -> similarity_checking -> extracted -> reviewed,
    with error reachable from any state. in_review marks a session whose review
    was saved as a draft; archived is set by session cleanup.
    """

    ANALYZING = "analyzing"
    EXTRACTING = "extracting"
    SIMILARITY_CHECKING = "similarity_checking"
    EXTRACTED = "extracted"
    IN_REVIEW = "in_review"
    REVIEWED = "reviewed"
    ARCHIVED = "archived"
    ERROR = "error"


# Statuses during which the orchestrator owns the session
ACTIVE_EXTRACTION_STATUSES = frozenset(
    {
        ExtractionStatus.ANALYZING,
        ExtractionStatus.EXTRACTING,
        ExtractionStatus.SIMILARITY_CHECKING,
    }
)

# Statuses whose extracted concepts may still receive review decisions
REVIEWABLE_EXTRACTION_STATUSES = frozenset(
    {
        ExtractionStatus.EXTRACTED,
        ExtractionStatus.IN_REVIEW,
    }
)


class ExtractionPhase(str, Enum):
    """Phase label stored on the session's progress record."""

    ANALYZING = "analyzing"
    EXTRACTING = "extracting"
    SIMILARITY_CHECKING = "similarity_checking"
    COMPLETED = "completed"
    ERROR = "error"


class CourseExtractionStatus(str, Enum):
    """Denormalized extraction status kept on the course record."""

    NOT_EXTRACTED = "not_extracted"
    EXTRACTING = "extracting"
    EXTRACTED = "extracted"
    REVIEWED = "reviewed"
    ERROR = "error"


class ReviewAction(str, Enum):
    """Decision a reviewer takes on one extracted concept."""

    APPROVE = "approve"  # Create as extracted
    EDIT = "edit"  # Create with reviewer edits applied
    LINK = "link"  # Link the course to an existing concept
    MERGE = "merge"  # Fold into an existing concept
    MANUAL_ADD = "manual_add"  # Reviewer-authored concept
    REJECT = "reject"  # Discard


class LLMOperation(str, Enum):
    """LLM operations issued by the extraction pipeline."""

    CONCEPT_EXTRACTION = "concept_extraction"
    SIMILARITY_CHECK = "similarity_check"
    FREE_TEXT = "free_text"
