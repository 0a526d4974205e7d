"""
Unit tests for the content chunker.

Test Organization:
    - TestAnalyzeCourseContent: Chunk plans for whole courses
    - TestKeywordChunks: Keyword grouping
    - TestTextChunks: Splitting long text with overlap
    - TestEstimates: Concept and processing-time estimates
    - TestValidateConfig: Configuration checks
"""

import pytest

from conceptlab.enums import ChunkType
from conceptlab.models.extraction import CourseContent
from conceptlab.services.extraction.chunker import (
    OVERLAP_SEPARATOR,
    ChunkingConfig,
    ContentChunker,
)


@pytest.fixture
def chunker() -> ContentChunker:
    return ContentChunker(ChunkingConfig())


@pytest.fixture
def small_chunker() -> ContentChunker:
    return ContentChunker(ChunkingConfig(max_chunk_size=200, min_chunk_size=50, overlap_size=20))


def paragraph(label: str, length: int = 80) -> str:
    return (label + " " + "x" * length)[:length]


class TestAnalyzeCourseContent:
    """Tests for ContentChunker.analyze_course_content."""

    def test_time_course_yields_three_chunks(self, chunker):
        course = CourseContent(
            course_id=1,
            keywords=["kwadrans, pół"],
            notes="Telling time in Polish uses ordinal numbers.",
            practice="Ćwiczenie: Która jest godzina? Jest kwadrans po trzeciej.",
            new_words=["kwadrans", "pół"],
        )

        plan = chunker.analyze_course_content(course)

        assert [c.type for c in plan.recommended_chunks] == [
            ChunkType.KEYWORDS,
            ChunkType.NOTES,
            ChunkType.PRACTICE,
        ]
        assert plan.recommended_chunks[0].content == "kwadrans, pół"
        assert all(c.estimated_concepts >= 1 for c in plan.recommended_chunks)
        assert plan.estimated_concepts == sum(
            c.estimated_concepts for c in plan.recommended_chunks
        )
        assert plan.analysis_metadata.homework_complexity is None

    def test_keywords_only_course_is_a_valid_plan(self, chunker):
        plan = chunker.analyze_course_content(CourseContent(course_id=2, keywords=["a", "b"]))

        assert len(plan.recommended_chunks) == 1
        assert plan.recommended_chunks[0].type == ChunkType.KEYWORDS
        assert plan.total_content_length == len("a, b")

    def test_homework_is_chunked_last(self, chunker):
        course = CourseContent(
            course_id=3, keywords=["k"], notes="n", practice="p", homework="Write five sentences."
        )

        plan = chunker.analyze_course_content(course)

        assert plan.recommended_chunks[-1].type == ChunkType.HOMEWORK
        assert plan.analysis_metadata.homework_complexity is not None

    def test_blank_content_produces_no_chunks(self, chunker):
        plan = chunker.analyze_course_content(
            CourseContent(course_id=4, keywords=["  ", ""], notes="   ", practice="")
        )

        assert plan.recommended_chunks == []
        assert plan.total_content_length == 0
        assert plan.analysis_metadata.estimated_concept_density == 0.0

    def test_processing_time_matches_plan(self, chunker):
        plan = chunker.analyze_course_content(
            CourseContent(course_id=5, keywords=["a"], notes="some notes", practice="some practice")
        )

        assert plan.estimated_processing_time == chunker.estimate_processing_time(
            len(plan.recommended_chunks), plan.estimated_concepts
        )


class TestKeywordChunks:
    """Tests for keyword grouping."""

    def test_keywords_are_sorted_and_grouped(self, chunker):
        keywords = [f"word{i:02d}" for i in range(19, -1, -1)]

        chunks = chunker.chunk_keywords(keywords)

        assert len(chunks) == 2
        assert chunks[0].content.split(", ")[0] == "word00"
        assert len(chunks[0].content.split(", ")) == 15
        assert len(chunks[1].content.split(", ")) == 5

    def test_keyword_estimate_is_eighty_percent(self, chunker):
        chunks = chunker.chunk_keywords([f"w{i}" for i in range(10)])

        assert chunks[0].estimated_concepts == 8

    def test_single_keyword_estimate_is_at_least_one(self, chunker):
        assert chunker.chunk_keywords(["kwadrans"])[0].estimated_concepts == 1


class TestTextChunks:
    """Tests for splitting text content."""

    def test_short_text_is_one_chunk(self, chunker):
        chunks = chunker.chunk_text_content("  Short notes.  ", ChunkType.NOTES)

        assert len(chunks) == 1
        assert chunks[0].content == "Short notes."

    def test_paragraphs_are_packed_with_overlap(self, small_chunker):
        text = "\n\n".join(paragraph(f"p{i}") for i in range(6))

        chunks = small_chunker.chunk_text_content(text, ChunkType.NOTES)

        assert len(chunks) == 3
        assert OVERLAP_SEPARATOR not in chunks[0].content
        assert all(OVERLAP_SEPARATOR in c.content for c in chunks[1:])
        assert chunks[1].content.split(OVERLAP_SEPARATOR)[1].startswith("p2")

    def test_smart_split_respects_max_size(self, small_chunker):
        text = "\n\n".join(paragraph(f"p{i}", 120) for i in range(5))

        segments = small_chunker.smart_split(text)

        assert segments
        assert all(len(s) <= 200 for s in segments)

    def test_oversized_paragraph_is_force_split(self, small_chunker):
        text = " ".join(f"Sentence number {i} is here." for i in range(30))

        segments = small_chunker.smart_split(text)

        assert len(segments) > 1
        assert all(len(s) <= 200 for s in segments)
        assert "Sentence number 0" in segments[0]

    def test_fixed_offsets_without_structure(self):
        chunker = ContentChunker(
            ChunkingConfig(max_chunk_size=200, min_chunk_size=50, preserve_structure=False)
        )

        segments = chunker.smart_split("y" * 450)

        assert [len(s) for s in segments] == [200, 200, 50]


class TestEstimates:
    """Tests for concept and time estimates."""

    def test_empty_text_estimates_one(self, chunker):
        assert chunker.estimate_concepts_in_text("") == 1

    def test_repetitive_text_estimates_low(self, chunker):
        assert chunker.estimate_concepts_in_text("kot " * 10) == 1

    def test_estimate_is_clamped_to_twice_target(self, chunker):
        text = " ".join(f"word{i}" for i in range(750))

        assert chunker.estimate_concepts_in_text(text) == 10

    def test_processing_time_formula(self):
        assert ContentChunker.estimate_processing_time(3, 4) == 3 * 15 + 4 * 3 + 4 * 5 + 10

    def test_keyword_weight_is_capped(self):
        assert ContentChunker.calculate_keyword_weight(["x" * 50] * 10) == 1.0
        assert ContentChunker.calculate_keyword_weight([]) == 0.0

    def test_text_complexity_range(self):
        assert ContentChunker.calculate_text_complexity(None) == 0.0
        assert 0.0 < ContentChunker.calculate_text_complexity("Która jest godzina") <= 1.0


class TestValidateConfig:
    """Tests for ContentChunker.validate_config."""

    def test_default_config_is_valid(self, chunker):
        assert chunker.validate_config() == []

    def test_reports_every_problem(self):
        chunker = ContentChunker(
            ChunkingConfig(
                max_chunk_size=100,
                min_chunk_size=500,
                overlap_size=300,
                target_concepts_per_chunk=0,
                keyword_group_size=0,
            )
        )

        assert len(chunker.validate_config()) == 4
