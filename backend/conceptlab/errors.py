"""
Error Types

Typed failures raised by the concept extraction services, plus a standardized
error payload for callers (API layer, CLI) that need to report them.

Taxonomy:
    ServiceError
    ├── ConceptExtractionError      precondition failures (missing course fields,
    │   │                           extraction already running, session not active)
    │   ├── CourseNotFoundError
    │   └── ExtractionSessionNotFoundError
    ├── ConceptValidationError      uniqueness/shape violations on create/update
    │   └── MergeValidationError
    ├── ConceptNotFoundError
    └── LLMServiceError             provider timeout, unparseable response,
                                    retries exhausted

Usage:
    from conceptlab.errors import ConceptValidationError, build_error_response

    try:
        await manager.create_concept(data)
    except ConceptValidationError as e:
        payload = build_error_response(e)
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel

logger = logging.getLogger(__name__)


# =============================================================================
# Error Response Schema
# =============================================================================


class ErrorResponse(BaseModel):
    """Standardized error response."""

    error: str  # Error code (e.g., "concept_validation_error")
    message: str  # Human-readable message
    error_id: str  # For log correlation
    details: Optional[dict] = None  # Additional context (sanitized)
    timestamp: datetime


# =============================================================================
# Custom Exceptions
# =============================================================================


class ServiceError(Exception):
    """
    Base exception for service errors.

    Provides consistent error handling with:
    - HTTP status code (for whichever API layer wraps the services)
    - Error code for categorization
    - Optional details for debugging

    Example:
        raise ServiceError("Database connection failed", status_code=503)
    """

    status_code: int = 500
    error_code: str = "service_error"

    def __init__(
        self,
        message: str,
        status_code: int = None,
        error_code: str = None,
        details: dict = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code:
            self.status_code = status_code
        if error_code:
            self.error_code = error_code
        self.details = details


class ConceptExtractionError(ServiceError):
    """
    Extraction precondition failure.

    Raised when a course is missing required content, an extraction is
    already in progress for the course, or a session is not in a state that
    allows the requested operation. Never leaves session state modified.
    """

    status_code = 422
    error_code = "concept_extraction_error"


class CourseNotFoundError(ConceptExtractionError):
    """Raised when the requested course does not exist."""

    status_code = 404
    error_code = "course_not_found"


class ExtractionSessionNotFoundError(ConceptExtractionError):
    """Raised when the requested extraction session does not exist."""

    status_code = 404
    error_code = "extraction_session_not_found"


class ConceptValidationError(ServiceError):
    """
    Concept validation error.

    Raised on uniqueness violations (same name and category among active
    concepts) or when required concept fields are missing.
    """

    status_code = 400
    error_code = "concept_validation_error"


class MergeValidationError(ConceptValidationError):
    """
    Merge validation error.

    Raised when the selected concepts cannot be merged (fewer than two,
    inactive, mixed categories, or a concept merged into itself).
    """

    error_code = "merge_validation_error"


class ConceptNotFoundError(ServiceError):
    """Raised when a concept id does not resolve to an active concept."""

    status_code = 404
    error_code = "concept_not_found"


class LLMServiceError(ServiceError):
    """
    LLM provider error.

    Raised when a model call times out, returns a response that cannot be
    parsed or validated, or keeps failing after all retry attempts. The
    operation name and attempt count are kept for diagnostics; the final
    underlying failure is available as ``last_error`` (and ``__cause__``
    when raised with ``from``).
    """

    status_code = 502
    error_code = "llm_service_error"

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        attempts: Optional[int] = None,
        last_error: Optional[BaseException] = None,
        details: dict = None,
    ):
        details = dict(details or {})
        if operation:
            details["operation"] = operation
        if attempts is not None:
            details["attempts"] = attempts
        super().__init__(message, details=details or None)
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


def build_error_response(exc: Exception, debug: bool = False) -> ErrorResponse:
    """
    Build a structured error payload for an exception.

    ServiceErrors keep their message and details. Anything else is reported
    generically unless debug is set, and is logged with a correlation id.

    Args:
        exc: The exception to report
        debug: Include internal error details for unexpected exceptions

    Returns:
        ErrorResponse ready for serialization
    """
    error_id = str(uuid4())
    now = datetime.now(timezone.utc)

    if isinstance(exc, ServiceError):
        return ErrorResponse(
            error=exc.error_code,
            message=exc.message,
            error_id=error_id,
            details=exc.details,
            timestamp=now,
        )

    logger.error(f"[{error_id}] Unexpected error: {exc}", exc_info=exc)
    return ErrorResponse(
        error="internal_error",
        message=str(exc) if debug else "An unexpected error occurred",
        error_id=error_id,
        details={"type": type(exc).__name__} if debug else None,
        timestamp=now,
    )
