"""
Extraction Session Store

Keyed access to extraction sessions with targeted field-path updates.

The orchestrator checkpoints individual sub-fields of the JSON progress
documents (e.g. ``extraction_progress.processed_chunks``) rather than whole
rows. Every update_fields call commits on its own, so the last checkpoint is
always visible to status readers even if the process dies right after.

At most one session per course may be active. Sessions carry the course id
in the unique ``active_course_id`` column while in an active status; a second
insert for the same course fails in the database and is reported as
ConceptExtractionError.

Usage:
    store = ExtractionSessionStore(db)
    session = await store.create(course_id=5, course_name="Course 5 - czas")
    await store.update_fields(session.id, {
        "status": ExtractionStatus.EXTRACTING,
        "extraction_progress.current_operation": "Starting chunk processing",
    })
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conceptlab.db.models import Course, ExtractionSession
from conceptlab.enums import ACTIVE_EXTRACTION_STATUSES, CourseExtractionStatus, ExtractionStatus
from conceptlab.errors import ConceptExtractionError, ExtractionSessionNotFoundError
from conceptlab.models.extraction import ExtractionMetadata, ExtractionProgress, ReviewProgress

logger = logging.getLogger(__name__)

# JSON document columns that accept dotted sub-field paths
DOCUMENT_FIELDS = frozenset(
    {"extraction_progress", "review_progress", "extraction_metadata", "similarity_matches"}
)

# Plain columns that may be set directly
SCALAR_FIELDS = frozenset({"status", "course_name", "extracted_concepts"})


def _to_json(value: Any) -> Any:
    """Convert pydantic models, enums and datetimes into JSON-compatible values."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_to_json(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_json(v) for k, v in value.items()}
    if hasattr(value, "value") and isinstance(getattr(value, "value"), str):
        return value.value
    return value


def set_path(document: dict, path: list[str], value: Any) -> None:
    """Set a nested key in document, creating intermediate dicts."""
    node = document
    for key in path[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    node[path[-1]] = value


class ExtractionSessionStore:
    """Persistence for ExtractionSession rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        course_id: int,
        course_name: str,
        status: ExtractionStatus = ExtractionStatus.ANALYZING,
        progress: Optional[ExtractionProgress] = None,
        metadata: Optional[ExtractionMetadata] = None,
    ) -> ExtractionSession:
        """
        Insert a new session.

        Raises:
            ConceptExtractionError: If an active session already exists for the course
        """
        now = datetime.now(timezone.utc)
        progress = progress or ExtractionProgress(last_updated=now)

        session = ExtractionSession(
            course_id=course_id,
            active_course_id=course_id if status in ACTIVE_EXTRACTION_STATUSES else None,
            course_name=course_name,
            status=status.value,
            extraction_date=now,
            extracted_concepts=[],
            similarity_matches={},
            extraction_progress=progress.model_dump(mode="json"),
            review_progress=ReviewProgress().model_dump(mode="json"),
            extraction_metadata=(metadata or ExtractionMetadata()).model_dump(mode="json"),
        )
        self.db.add(session)

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"Rejected second active extraction session for course {course_id}")
            raise ConceptExtractionError(
                "Extraction already in progress for this course",
                details={"course_id": course_id},
            ) from e

        await self.db.refresh(session)
        logger.info(f"Created extraction session {session.id} for course {course_id}")
        return session

    async def get(self, session_id: str) -> Optional[ExtractionSession]:
        return await self.db.get(ExtractionSession, session_id, populate_existing=True)

    async def get_or_raise(self, session_id: str) -> ExtractionSession:
        session = await self.get(session_id)
        if session is None:
            raise ExtractionSessionNotFoundError(f"Extraction session {session_id} not found")
        return session

    async def find_active_for_course(self, course_id: int) -> Optional[ExtractionSession]:
        """The session currently holding the course's active slot, if any."""
        result = await self.db.execute(
            select(ExtractionSession).where(ExtractionSession.active_course_id == course_id)
        )
        return result.scalar_one_or_none()

    async def latest_for_course(
        self, course_id: int, statuses: Optional[set[ExtractionStatus]] = None
    ) -> Optional[ExtractionSession]:
        """Most recently started session for the course, optionally filtered by status."""
        stmt = select(ExtractionSession).where(ExtractionSession.course_id == course_id)
        if statuses:
            stmt = stmt.where(ExtractionSession.status.in_([s.value for s in statuses]))
        stmt = stmt.order_by(ExtractionSession.extraction_date.desc()).limit(1)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_course(self, course_id: int) -> list[ExtractionSession]:
        result = await self.db.execute(
            select(ExtractionSession)
            .where(ExtractionSession.course_id == course_id)
            .order_by(ExtractionSession.extraction_date.desc())
        )
        return list(result.scalars())

    async def update_fields(self, session_id: str, fields: dict[str, Any]) -> ExtractionSession:
        """
        Apply targeted updates and commit.

        Keys are either plain columns ("status", "course_name",
        "extracted_concepts") or dotted paths into a JSON document
        ("extraction_progress.processed_chunks"). A bare document name
        replaces the whole document. extraction_progress.last_updated is
        stamped on every call.

        Changing status also moves the session in or out of the course's
        active slot.

        Raises:
            ExtractionSessionNotFoundError: If the session does not exist
            ValueError: On an unknown field
        """
        session = await self.get_or_raise(session_id)

        documents: dict[str, dict] = {}
        for key, value in fields.items():
            root, _, rest = key.partition(".")
            value = _to_json(value)

            if root in DOCUMENT_FIELDS:
                if root not in documents:
                    documents[root] = copy.deepcopy(getattr(session, root) or {})
                if rest:
                    set_path(documents[root], rest.split("."), value)
                else:
                    documents[root] = value
            elif root in SCALAR_FIELDS and not rest:
                setattr(session, root, value)
            else:
                raise ValueError(f"Unknown extraction session field: {key}")

        progress = documents.get("extraction_progress")
        if progress is None:
            progress = copy.deepcopy(session.extraction_progress or {})
            documents["extraction_progress"] = progress
        progress["last_updated"] = datetime.now(timezone.utc).isoformat()

        # Reassign so the JSON columns are flagged dirty
        for root, document in documents.items():
            setattr(session, root, document)

        if "status" in fields:
            status = ExtractionStatus(session.status)
            session.active_course_id = (
                session.course_id if status in ACTIVE_EXTRACTION_STATUSES else None
            )

        await self.db.commit()
        await self.db.refresh(session)
        return session


async def update_course_status(
    db: AsyncSession,
    course_id: int,
    status: CourseExtractionStatus,
    extracted_names: Optional[list[str]] = None,
) -> None:
    """
    Update a course's denormalized extraction fields.

    Secondary bookkeeping: failures are logged and swallowed.
    """
    try:
        course = await db.get(Course, course_id)
        if course is None:
            logger.warning(f"Course {course_id} not found while updating extraction status")
            return

        course.concept_extraction_status = status.value
        if status in (CourseExtractionStatus.EXTRACTED, CourseExtractionStatus.REVIEWED):
            course.concept_extraction_date = datetime.now(timezone.utc)
        if extracted_names is not None:
            course.extracted_concepts = list(extracted_names)

        await db.commit()
    except Exception as e:
        logger.error(f"Failed to update extraction status of course {course_id}: {e}")
        await db.rollback()
