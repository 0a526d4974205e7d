"""
Unit tests for the duplication detector.

Runs against an in-memory SQLite database.

Test Organization:
    - TestFindExactDuplicate: Exact vs case-insensitive matches, scoping
    - TestBatchChecks: check_for_duplicates and the derived helpers
    - TestDuplicationReport: Display report and creation gate
"""

import pytest

from conceptlab.enums import ConceptCategory, DuplicateMatchType
from conceptlab.services.extraction.duplicates import DuplicationDetector
from tests.factories import create_concept, make_extracted


class TestFindExactDuplicate:
    """Tests for DuplicationDetector.find_exact_duplicate."""

    @pytest.mark.asyncio
    async def test_case_exact_and_case_insensitive_are_distinguished(self, db_session):
        stored = await create_concept(db_session, "Kwadrans", ConceptCategory.VOCABULARY)
        detector = DuplicationDetector(db_session)

        lower = await detector.find_exact_duplicate("kwadrans", ConceptCategory.VOCABULARY)
        exact = await detector.find_exact_duplicate("Kwadrans", ConceptCategory.VOCABULARY)

        assert lower.concept.id == stored.id
        assert lower.match_type == DuplicateMatchType.CASE_INSENSITIVE
        assert exact.concept.id == stored.id
        assert exact.match_type == DuplicateMatchType.EXACT

    @pytest.mark.asyncio
    async def test_surrounding_whitespace_is_ignored(self, db_session):
        await create_concept(db_session, "Kwadrans")
        detector = DuplicationDetector(db_session)

        result = await detector.find_exact_duplicate("  Kwadrans ", ConceptCategory.VOCABULARY)

        assert result.match_type == DuplicateMatchType.EXACT

    @pytest.mark.asyncio
    async def test_lookup_is_idempotent(self, db_session):
        await create_concept(db_session, "Locative Case", ConceptCategory.GRAMMAR)
        detector = DuplicationDetector(db_session)

        first = await detector.find_exact_duplicate("Locative Case", ConceptCategory.GRAMMAR)
        second = await detector.find_exact_duplicate("Locative Case", ConceptCategory.GRAMMAR)

        assert first == second

    @pytest.mark.asyncio
    async def test_other_category_is_not_a_duplicate(self, db_session):
        await create_concept(db_session, "Kwadrans", ConceptCategory.VOCABULARY)
        detector = DuplicationDetector(db_session)

        assert await detector.find_exact_duplicate("Kwadrans", ConceptCategory.GRAMMAR) is None
        assert await detector.find_exact_duplicate(
            "Kwadrans", ConceptCategory.GRAMMAR, filter_category=ConceptCategory.VOCABULARY
        )

    @pytest.mark.asyncio
    async def test_archived_concepts_are_ignored(self, db_session):
        await create_concept(db_session, "Kwadrans", is_active=False)
        detector = DuplicationDetector(db_session)

        assert not await detector.is_duplicate("Kwadrans", ConceptCategory.VOCABULARY)

    @pytest.mark.asyncio
    async def test_excluded_ids_are_skipped(self, db_session):
        stored = await create_concept(db_session, "Kwadrans")
        detector = DuplicationDetector(db_session)

        result = await detector.find_exact_duplicate(
            "Kwadrans", ConceptCategory.VOCABULARY, exclude_ids={stored.id}
        )

        assert result is None

    @pytest.mark.asyncio
    async def test_similar_description_is_not_a_duplicate(self, db_session):
        await create_concept(db_session, "Kwadrans", description="A quarter of an hour")
        detector = DuplicationDetector(db_session)

        assert not await detector.is_duplicate("Quarter hour", ConceptCategory.VOCABULARY)

    @pytest.mark.asyncio
    async def test_blank_name_never_matches(self, db_session):
        detector = DuplicationDetector(db_session)

        assert await detector.find_exact_duplicate("   ", ConceptCategory.GRAMMAR) is None


class TestBatchChecks:
    """Tests for batch duplicate checks."""

    @pytest.mark.asyncio
    async def test_check_for_duplicates(self, db_session):
        await create_concept(db_session, "Kwadrans")
        detector = DuplicationDetector(db_session)
        candidates = [make_extracted("kwadrans"), make_extracted("Pół")]

        result = await detector.check_for_duplicates(candidates)

        assert result.has_duplicates
        assert result.duplicate_concept_names == ["kwadrans"]
        assert result.duplicates[0].duplicate_type == DuplicateMatchType.CASE_INSENSITIVE

    @pytest.mark.asyncio
    async def test_creatable_and_duplicate_split(self, db_session):
        await create_concept(db_session, "Kwadrans")
        detector = DuplicationDetector(db_session)
        candidates = [make_extracted("Kwadrans"), make_extracted("Pół")]

        creatable = await detector.get_creatable_concepts(candidates)
        duplicates = await detector.get_duplicate_concepts(candidates)

        assert [c.name for c in creatable] == ["Pół"]
        assert [c.name for c in duplicates] == ["Kwadrans"]

    @pytest.mark.asyncio
    async def test_no_duplicates(self, db_session):
        detector = DuplicationDetector(db_session)

        result = await detector.check_for_duplicates([make_extracted("Pół")])

        assert not result.has_duplicates
        assert result.duplicates == []


class TestDuplicationReport:
    """Tests for reports and the creation gate."""

    @pytest.mark.asyncio
    async def test_report_details(self, db_session):
        stored = await create_concept(db_session, "Kwadrans")
        detector = DuplicationDetector(db_session)

        report = await detector.get_duplication_report(
            [make_extracted("Kwadrans"), make_extracted("Pół")]
        )

        assert report.total_concepts == 2
        assert report.duplicate_count == 1
        detail = report.duplicate_details[0]
        assert detail.existing_id == stored.id
        assert detail.duplicate_type == DuplicateMatchType.EXACT
        assert detail.recommended_action == "Edit the concept name to make it unique"

    @pytest.mark.asyncio
    async def test_creation_rejected_when_any_duplicate(self, db_session):
        await create_concept(db_session, "Kwadrans")
        detector = DuplicationDetector(db_session)

        result = await detector.validate_concepts_for_creation(
            [make_extracted("Kwadrans"), make_extracted("Pół")]
        )

        assert not result.is_valid
        assert result.message.startswith("Cannot create concepts due to duplicates: Kwadrans.")

    @pytest.mark.asyncio
    async def test_creation_allowed_without_duplicates(self, db_session):
        detector = DuplicationDetector(db_session)

        result = await detector.validate_concepts_for_creation([make_extracted("Pół")])

        assert result.is_valid
        assert result.message == "All concepts are valid for creation"
