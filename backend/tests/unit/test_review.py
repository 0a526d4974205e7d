"""
Unit tests for applying review decisions.

Test Organization:
    - TestActions: One test per review action
    - TestErrors: Failing decisions are collected and rolled back, not raised
    - TestSessionRecording: Review progress, draft mode and course status
    - TestSessionResolution: Session/course mismatches and running sessions
"""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from conceptlab.db.models import Concept, Course, CourseConcept
from conceptlab.enums import ExtractionStatus, ReviewAction
from conceptlab.errors import ConceptExtractionError
from conceptlab.models.concepts import MergeExtraData
from conceptlab.models.extraction import ReviewDecision, ReviewMergeData
from conceptlab.services.extraction.concept_manager import ConceptManager
from conceptlab.services.extraction.merger import ConceptMerger
from conceptlab.services.extraction.review import ReviewService
from conceptlab.services.extraction.session_store import ExtractionSessionStore
from tests.factories import create_concept, create_course, make_extracted


@pytest.fixture
def review(db_session, mock_gateway, test_settings) -> ReviewService:
    manager = ConceptManager(db_session, gateway=mock_gateway, config=test_settings)
    merger = ConceptMerger(db_session, on_change=manager.index_cache.invalidate, config=test_settings)
    return ReviewService(db_session, manager=manager, merger=merger)


@pytest.fixture
def store(db_session) -> ExtractionSessionStore:
    return ExtractionSessionStore(db_session)


async def extracted_session(db_session, store, course_id=1, status=ExtractionStatus.EXTRACTED):
    await create_course(db_session, course_id=course_id)
    return await store.create(course_id=course_id, course_name=f"Course {course_id}", status=status)


def decision(action: ReviewAction, name: str, **kwargs) -> ReviewDecision:
    return ReviewDecision(action=action, extracted_concept=make_extracted(name), **kwargs)


async def links_for(db_session, concept_id):
    result = await db_session.execute(
        select(CourseConcept).where(CourseConcept.concept_id == concept_id)
    )
    return list(result.scalars())


async def concept_named(db_session, name):
    result = await db_session.execute(select(Concept).where(Concept.name == name))
    return result.scalar_one()


class TestActions:
    """Tests for each review action."""

    @pytest.mark.asyncio
    async def test_approve_creates_and_links(self, review, db_session, store):
        await extracted_session(db_session, store)

        result = await review.apply_reviewed_concepts(1, [decision(ReviewAction.APPROVE, "Kwadrans")])

        assert result.success
        assert result.created == 1
        concept = await concept_named(db_session, "Kwadrans")
        assert concept.created_from == ["1"]
        links = await links_for(db_session, concept.id)
        assert links[0].course_id == 1
        assert links[0].confidence == 0.9
        assert links[0].source_content == "Source excerpt for Kwadrans"

    @pytest.mark.asyncio
    async def test_approve_reuses_existing_concept(self, review, db_session, store):
        await extracted_session(db_session, store)
        existing = await create_concept(db_session, "Kwadrans", created_from=["0"])

        result = await review.apply_reviewed_concepts(1, [decision(ReviewAction.APPROVE, "kwadrans")])

        assert result.created == 1
        db_session.expire_all()
        concept = await db_session.get(Concept, existing.id)
        assert concept.created_from == ["0", "1"]

    @pytest.mark.asyncio
    async def test_edit_applies_reviewer_changes(self, review, db_session, store):
        await extracted_session(db_session, store)

        result = await review.apply_reviewed_concepts(
            1,
            [
                decision(
                    ReviewAction.EDIT,
                    "Pół",
                    edited_concept={"name": "Pół (half)", "description": "Half of something"},
                )
            ],
        )

        assert result.edited == 1
        concept = await concept_named(db_session, "Pół (half)")
        assert concept.description == "Half of something"

    @pytest.mark.asyncio
    async def test_link_records_provenance(self, review, db_session, store):
        await extracted_session(db_session, store)
        existing = await create_concept(db_session, "Godzina")

        result = await review.apply_reviewed_concepts(
            1, [decision(ReviewAction.LINK, "godzina", target_concept_id=existing.id)]
        )

        assert result.linked == 1
        db_session.expire_all()
        assert (await db_session.get(Concept, existing.id)).created_from == ["1"]
        assert [l.course_id for l in await links_for(db_session, existing.id)] == [1]

    @pytest.mark.asyncio
    async def test_merge_folds_into_primary(self, review, db_session, store):
        await extracted_session(db_session, store)
        primary = await create_concept(db_session, "Minuta", examples=["jedna minuta"])

        result = await review.apply_reviewed_concepts(
            1,
            [
                decision(
                    ReviewAction.MERGE,
                    "Minuty",
                    merge_data=ReviewMergeData(
                        primary_concept_id=primary.id,
                        additional_data=MergeExtraData(examples=["pięć minut"]),
                    ),
                )
            ],
        )

        assert result.merged == 1
        db_session.expire_all()
        merged = await db_session.get(Concept, primary.id)
        assert merged.examples == ["jedna minuta", "Example with Minuty", "pięć minut"]
        assert len(await links_for(db_session, primary.id)) == 1

    @pytest.mark.asyncio
    async def test_manual_add_and_reject(self, review, db_session, store):
        await extracted_session(db_session, store)

        result = await review.apply_reviewed_concepts(
            1,
            [
                decision(ReviewAction.MANUAL_ADD, "Wpół do"),
                decision(ReviewAction.REJECT, "Noise"),
            ],
        )

        assert result.manual_added == 1
        assert result.rejected == 1
        assert result.processed == 2
        names = (await db_session.execute(select(Concept.name))).scalars().all()
        assert names == ["Wpół do"]

    @pytest.mark.asyncio
    async def test_decision_course_overrides_reviewed_course(self, review, db_session, store):
        await extracted_session(db_session, store)

        await review.apply_reviewed_concepts(
            1, [decision(ReviewAction.APPROVE, "Kwadrans", course_id=7)]
        )

        concept = await concept_named(db_session, "Kwadrans")
        assert [l.course_id for l in await links_for(db_session, concept.id)] == [7]


class TestErrors:
    """Tests for failing decisions."""

    @pytest.mark.asyncio
    async def test_failures_are_collected_and_batch_continues(self, review, db_session, store):
        await extracted_session(db_session, store)

        result = await review.apply_reviewed_concepts(
            1,
            [
                decision(ReviewAction.LINK, "Ghost", target_concept_id="missing"),
                decision(ReviewAction.EDIT, "Pół"),
                decision(ReviewAction.MERGE, "Minuty"),
                decision(ReviewAction.APPROVE, "Kwadrans"),
            ],
        )

        assert not result.success
        assert result.processed == 1
        assert result.created == 1
        assert result.errors == [
            'Error processing concept "Ghost": Concept with ID missing not found',
            'Error processing concept "Pół": Edited concept data is required for edit action',
            'Error processing concept "Minuty": Merge data is required for merge action',
        ]

    @pytest.mark.asyncio
    async def test_link_requires_target(self, review, db_session, store):
        await extracted_session(db_session, store)

        result = await review.apply_reviewed_concepts(1, [decision(ReviewAction.LINK, "Kwadrans")])

        assert result.errors == [
            'Error processing concept "Kwadrans": Target concept ID is required for link action'
        ]

    @pytest.mark.asyncio
    async def test_archived_link_target_is_an_error(self, review, db_session, store):
        await extracted_session(db_session, store)
        archived = await create_concept(db_session, "Old", is_active=False)

        result = await review.apply_reviewed_concepts(
            1, [decision(ReviewAction.LINK, "Old", target_concept_id=archived.id)]
        )

        assert result.linked == 0
        assert len(result.errors) == 1

    @pytest.mark.asyncio
    async def test_failed_course_link_leaves_no_concept_behind(self, review, db_session, store):
        await extracted_session(db_session, store)
        review.manager.link_concept_to_course = AsyncMock(side_effect=RuntimeError("link failed"))

        result = await review.apply_reviewed_concepts(1, [decision(ReviewAction.APPROVE, "Kwadrans")])

        assert result.created == 0
        assert result.errors == ['Error processing concept "Kwadrans": link failed']
        remaining = await db_session.execute(select(Concept).where(Concept.name == "Kwadrans"))
        assert remaining.scalars().all() == []

    @pytest.mark.asyncio
    async def test_failed_course_link_keeps_provenance_unchanged(self, review, db_session, store):
        await extracted_session(db_session, store)
        existing = await create_concept(db_session, "Godzina", created_from=["0"])
        review.manager.link_concept_to_course = AsyncMock(side_effect=RuntimeError("link failed"))

        result = await review.apply_reviewed_concepts(
            1, [decision(ReviewAction.LINK, "Godzina", target_concept_id=existing.id)]
        )

        assert result.linked == 0
        db_session.expire_all()
        assert (await db_session.get(Concept, existing.id)).created_from == ["0"]



class TestSessionRecording:
    """Tests for recording the review on the session."""

    @pytest.mark.asyncio
    async def test_finalized_review(self, review, db_session, store):
        session = await extracted_session(db_session, store)

        await review.apply_reviewed_concepts(
            1,
            [
                decision(ReviewAction.APPROVE, "Kwadrans"),
                decision(ReviewAction.LINK, "Ghost", target_concept_id="missing"),
            ],
        )

        recorded = await store.get(session.id)
        assert recorded.status == ExtractionStatus.REVIEWED.value
        assert recorded.review_progress["reviewed_count"] == 1
        assert recorded.review_progress["is_draft"] is False
        assert [d["success"] for d in recorded.review_progress["decisions"]] == [True, False]
        assert (await db_session.get(Course, 1)).concept_extraction_status == "reviewed"

    @pytest.mark.asyncio
    async def test_draft_review_stays_in_review(self, review, db_session, store):
        session = await extracted_session(db_session, store)

        await review.apply_reviewed_concepts(
            1, [decision(ReviewAction.REJECT, "Noise")], finalize=False
        )
        await review.apply_reviewed_concepts(
            1, [decision(ReviewAction.APPROVE, "Kwadrans")], finalize=False
        )

        recorded = await store.get(session.id)
        assert recorded.status == ExtractionStatus.IN_REVIEW.value
        assert recorded.review_progress["is_draft"] is True
        assert recorded.review_progress["reviewed_count"] == 2
        assert len(recorded.review_progress["decisions"]) == 2
        assert (await db_session.get(Course, 1)).concept_extraction_status == "not_extracted"

    @pytest.mark.asyncio
    async def test_without_a_session(self, review, db_session):
        await create_course(db_session)

        result = await review.apply_reviewed_concepts(1, [decision(ReviewAction.APPROVE, "Kwadrans")])

        assert result.created == 1


class TestSessionResolution:
    """Tests for explicit session ids."""

    @pytest.mark.asyncio
    async def test_session_of_another_course(self, review, db_session, store):
        session = await extracted_session(db_session, store, course_id=2)

        with pytest.raises(ConceptExtractionError) as exc_info:
            await review.apply_reviewed_concepts(1, [], session_id=session.id)

        assert exc_info.value.message == (
            f"Extraction session {session.id} belongs to course 2, not 1"
        )

    @pytest.mark.asyncio
    async def test_running_session(self, review, db_session, store):
        session = await extracted_session(db_session, store, status=ExtractionStatus.EXTRACTING)

        with pytest.raises(ConceptExtractionError) as exc_info:
            await review.apply_reviewed_concepts(1, [], session_id=session.id)

        assert "is still running" in exc_info.value.message
