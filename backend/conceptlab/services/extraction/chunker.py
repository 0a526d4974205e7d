"""
Content Chunker

Plans how a course's raw material is split into chunks for extraction.
Planning is a pure function of the course content: no I/O, no LLM calls.

Chunking rules:
- Keywords are sorted and grouped KEYWORD_GROUP_SIZE per chunk, joined with ", "
- Notes, practice and homework each become one chunk when they fit in
  MAX_CHUNK_SIZE characters; longer text is split at paragraph boundaries,
  falling back to sentence and finally character splits. Every segment after
  the first is prefixed with the last OVERLAP_SIZE characters of the previous
  segment for context.
- Empty content types produce no chunks.

Each chunk carries an estimated concept count, clamped to
[1, 2 * TARGET_CONCEPTS_PER_CHUNK].

Usage:
    from conceptlab.services.extraction.chunker import ContentChunker

    plan = ContentChunker().analyze_course_content(course)
    for chunk in plan.recommended_chunks:
        print(chunk.type, chunk.estimated_concepts)
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Optional

from langchain_text_splitters import RecursiveCharacterTextSplitter

from conceptlab.config.extraction import ExtractionSettings, extraction_settings
from conceptlab.enums import ChunkType
from conceptlab.models.extraction import (
    AnalysisMetadata,
    ChunkPlan,
    ContentChunk,
    CourseContent,
)

logger = logging.getLogger(__name__)

OVERLAP_SEPARATOR = "\n---\n"

# Processing-time model (seconds)
BASE_TIME_PER_CHUNK = 15
TIME_PER_CONCEPT = 3
SIMILARITY_TIME_PER_CONCEPT = 5
PROCESSING_OVERHEAD = 10

# Share of keywords expected to become concepts
KEYWORD_CONCEPT_RATIO = 0.8

# Roughly one concept per this many words before the diversity adjustment
WORDS_PER_CONCEPT = 75

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


@dataclass
class ChunkingConfig:
    """Chunking parameters."""

    max_chunk_size: int = 3000
    min_chunk_size: int = 500
    overlap_size: int = 100
    preserve_structure: bool = True
    target_concepts_per_chunk: int = 5
    keyword_group_size: int = 15

    @classmethod
    def from_settings(cls, config: ExtractionSettings) -> "ChunkingConfig":
        return cls(
            max_chunk_size=config.MAX_CHUNK_SIZE,
            min_chunk_size=config.MIN_CHUNK_SIZE,
            overlap_size=config.OVERLAP_SIZE,
            preserve_structure=config.PRESERVE_STRUCTURE,
            target_concepts_per_chunk=config.TARGET_CONCEPTS_PER_CHUNK,
            keyword_group_size=config.KEYWORD_GROUP_SIZE,
        )

    @property
    def max_concepts_per_chunk(self) -> int:
        return max(1, 2 * self.target_concepts_per_chunk)


class ContentChunker:
    """Analyzes course content and produces a chunk plan."""

    def __init__(self, config: Optional[ChunkingConfig] = None):
        self.config = config or ChunkingConfig.from_settings(extraction_settings)

    # =========================================================================
    # Planning
    # =========================================================================

    def analyze_course_content(self, course: CourseContent) -> ChunkPlan:
        """
        Build the chunk plan for a course.

        Chunks are ordered keywords, notes, practice, homework.

        Args:
            course: Course source record

        Returns:
            ChunkPlan with chunks, total length, time estimate and metrics
        """
        keywords = [k.strip() for k in course.keywords if k and k.strip()]
        logger.info(
            f"Starting content analysis for course {course.course_id} "
            f"(keywords={len(keywords)}, notes={len(course.notes or '')} chars, "
            f"practice={len(course.practice or '')} chars)"
        )

        chunks: list[ContentChunk] = []
        total_length = 0

        if keywords:
            keyword_chunks = self.chunk_keywords(keywords)
            chunks.extend(keyword_chunks)
            total_length += sum(len(chunk.content) for chunk in keyword_chunks)

        for chunk_type, text in (
            (ChunkType.NOTES, course.notes),
            (ChunkType.PRACTICE, course.practice),
            (ChunkType.HOMEWORK, course.homework),
        ):
            if text and text.strip():
                chunks.extend(self.chunk_text_content(text, chunk_type))
                total_length += len(text)

        estimated_concepts = sum(chunk.estimated_concepts for chunk in chunks)
        metadata = AnalysisMetadata(
            keywords_weight=self.calculate_keyword_weight(keywords),
            notes_complexity=self.calculate_text_complexity(course.notes),
            practice_complexity=self.calculate_text_complexity(course.practice),
            homework_complexity=(
                self.calculate_text_complexity(course.homework) if course.homework else None
            ),
            estimated_concept_density=(
                estimated_concepts / total_length * 1000 if total_length else 0.0
            ),
        )

        plan = ChunkPlan(
            total_content_length=total_length,
            estimated_processing_time=self.estimate_processing_time(len(chunks), estimated_concepts),
            recommended_chunks=chunks,
            analysis_metadata=metadata,
        )

        logger.info(
            f"Content analysis completed for course {course.course_id}: "
            f"{len(chunks)} chunks, ~{estimated_concepts} concepts, "
            f"~{plan.estimated_processing_time}s"
        )
        return plan

    def chunk_keywords(self, keywords: list[str]) -> list[ContentChunk]:
        """Group sorted keywords into chunks of keyword_group_size."""
        size = max(1, self.config.keyword_group_size)
        ordered = sorted(keywords)

        chunks = []
        for start in range(0, len(ordered), size):
            group = ordered[start : start + size]
            chunks.append(
                ContentChunk(
                    type=ChunkType.KEYWORDS,
                    content=", ".join(group),
                    estimated_concepts=self._clamp_estimate(
                        math.floor(len(group) * KEYWORD_CONCEPT_RATIO)
                    ),
                )
            )
        return chunks

    def chunk_text_content(self, text: str, chunk_type: ChunkType) -> list[ContentChunk]:
        """Split one free-text field into chunks with overlap."""
        if len(text) <= self.config.max_chunk_size:
            return [
                ContentChunk(
                    type=chunk_type,
                    content=text.strip(),
                    estimated_concepts=self.estimate_concepts_in_text(text),
                )
            ]

        segments = self.smart_split(text)
        chunks = []
        for i, segment in enumerate(segments):
            content = segment
            if i > 0 and self.config.overlap_size > 0:
                overlap = segments[i - 1][-self.config.overlap_size :]
                content = overlap + OVERLAP_SEPARATOR + segment

            chunks.append(
                ContentChunk(
                    type=chunk_type,
                    content=content.strip(),
                    estimated_concepts=self.estimate_concepts_in_text(segment),
                )
            )

        logger.debug(f"Split {chunk_type.value} content ({len(text)} chars) into {len(chunks)} chunks")
        return chunks

    # =========================================================================
    # Splitting
    # =========================================================================

    def smart_split(self, text: str) -> list[str]:
        """
        Split text into segments of at most max_chunk_size characters.

        With preserve_structure, paragraphs are packed into segments; a
        segment that would stay below min_chunk_size is force-split instead.
        Without it, text is cut at fixed character offsets.
        """
        size = self.config.max_chunk_size
        if not self.config.preserve_structure:
            return [text[i : i + size] for i in range(0, len(text), size)]

        segments: list[str] = []
        current = ""

        for paragraph in _PARAGRAPH_BREAK.split(text):
            candidate = f"{current}\n\n{paragraph}" if current else paragraph

            if len(candidate) <= size:
                current = candidate
            elif len(current) >= self.config.min_chunk_size:
                segments.append(current)
                current = paragraph
                if len(current) > size:
                    segments.extend(self.force_split(current))
                    current = ""
            else:
                segments.extend(self.force_split(candidate))
                current = ""

        if current:
            segments.append(current)

        return [segment for segment in segments if segment.strip()]

    def force_split(self, text: str) -> list[str]:
        """Split at sentence boundaries, then words, then characters."""
        splitter = RecursiveCharacterTextSplitter(
            chunk_size=self.config.max_chunk_size,
            chunk_overlap=0,
            separators=[". ", "! ", "? ", "\n", " ", ""],
            keep_separator="end",
            length_function=len,
        )
        return [segment for segment in splitter.split_text(text) if segment.strip()]

    # =========================================================================
    # Estimates and metrics
    # =========================================================================

    def _clamp_estimate(self, value: int) -> int:
        return max(1, min(self.config.max_concepts_per_chunk, value))

    def estimate_concepts_in_text(self, text: str) -> int:
        """
        Estimate concepts in a text segment.

        About one concept per 75 words, scaled up by vocabulary diversity
        (unique/total words).
        """
        words = text.split()
        if not words:
            return 1

        unique_ratio = len({w.lower() for w in words}) / len(words)
        base = math.ceil(len(words) / WORDS_PER_CONCEPT)
        return self._clamp_estimate(math.floor(base * (1 + 2 * unique_ratio)))

    @staticmethod
    def calculate_keyword_weight(keywords: list[str]) -> float:
        """Weight in [0, 1] from keyword count and average length."""
        if not keywords:
            return 0.0
        avg_length = sum(len(k) for k in keywords) / len(keywords)
        return min(1.0, len(keywords) * avg_length / 100)

    @staticmethod
    def calculate_text_complexity(text: Optional[str]) -> float:
        """Complexity in [0, 1] from average word length and vocabulary diversity."""
        words = (text or "").split()
        if not words:
            return 0.0
        diversity = len({w.lower() for w in words}) / len(words)
        avg_word_length = sum(len(w) for w in words) / len(words)
        return min(1.0, avg_word_length * diversity / 10)

    @staticmethod
    def estimate_processing_time(chunk_count: int, estimated_concepts: int) -> int:
        """Seconds: per-chunk base, per-concept extraction and similarity, overhead."""
        extraction = chunk_count * BASE_TIME_PER_CHUNK + estimated_concepts * TIME_PER_CONCEPT
        similarity = estimated_concepts * SIMILARITY_TIME_PER_CONCEPT
        return extraction + similarity + PROCESSING_OVERHEAD

    def validate_config(self) -> list[str]:
        """Return configuration problems; empty when the config is usable."""
        errors = []
        if self.config.max_chunk_size <= self.config.min_chunk_size:
            errors.append("max_chunk_size must be greater than min_chunk_size")
        if self.config.overlap_size >= self.config.min_chunk_size / 2:
            errors.append("overlap_size should be less than half of min_chunk_size")
        if self.config.target_concepts_per_chunk <= 0:
            errors.append("target_concepts_per_chunk must be positive")
        if self.config.keyword_group_size <= 0:
            errors.append("keyword_group_size must be positive")
        return errors
