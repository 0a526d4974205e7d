"""
LLM Gateway for Concept Extraction

Every model interaction of the extraction pipeline goes through LLMGateway:

- extract_concepts: course content -> validated ExtractedConcepts
- score_similarity: one candidate vs. a subset of the concept index ->
  validated SimilarityMatches
- free_text: plain prompt -> text

Each call races the provider against a fixed timeout and is retried with an
increasing delay (attempt * base delay). Malformed JSON and responses of the
wrong shape count as failures and are retried too. Once attempts run out an
LLMServiceError carrying the last cause is raised.

Model output is untrusted. The module-level validate_* and parse_* functions
coerce every field into its documented domain and never raise on bad values:
unknown categories become grammar, unparseable confidences become 0.5 (others
are clamped to [0, 1]) and unknown difficulty levels become B1.

Usage:
    from conceptlab.services.extraction.gateway import LLMGateway

    gateway = LLMGateway()
    concepts = await gateway.extract_concepts(ExtractionInput(notes="..."))
    matches = await gateway.score_similarity(concepts[0], index)
"""

import asyncio
import json
import logging
import math
from collections.abc import Callable
from typing import Any, Optional, TypeVar

from conceptlab.config.extraction import ExtractionSettings, extraction_settings
from conceptlab.enums import ConceptCategory, DifficultyLevel, LLMOperation, TagSource
from conceptlab.errors import LLMServiceError
from conceptlab.models.concepts import (
    ConceptIndexEntry,
    ExtractedConcept,
    MergeSuggestion,
    SimilarityMatch,
    SuggestedTag,
)
from conceptlab.models.extraction import ExtractionInput
from conceptlab.services.extraction.prompts import (
    CONCEPT_EXTRACTION_SYSTEM_PROMPT,
    EXTRACTION_PROMPT,
    FREE_TEXT_SYSTEM_PROMPT,
    SIMILARITY_PROMPT,
    SIMILARITY_SYSTEM_PROMPT,
)
from conceptlab.services.llm.client import LLMClient, build_messages, get_llm_client
from conceptlab.services.llm.response_parsing import parse_json_response
from conceptlab.services.llm.resilience import SleepFn, with_retry, with_timeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CONFIDENCE = 0.5
DEFAULT_CATEGORY = ConceptCategory.GRAMMAR
DEFAULT_DIFFICULTY = DifficultyLevel.B1


# =============================================================================
# Field validation
# =============================================================================


def validate_category(value: Any) -> ConceptCategory:
    """Return the category for an exact enum value, otherwise grammar."""
    for category in ConceptCategory:
        if value == category.value:
            return category
    return DEFAULT_CATEGORY


def validate_confidence(value: Any) -> float:
    """Clamp a confidence-like value to [0, 1]; unparseable values become 0.5."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if math.isnan(number):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, number))


def validate_difficulty(value: Any) -> DifficultyLevel:
    """Return the CEFR level for an exact enum value, otherwise B1."""
    if isinstance(value, str):
        for level in DifficultyLevel:
            if value == level.value:
                return level
    return DEFAULT_DIFFICULTY


def _as_str(value: Any, default: str = "") -> str:
    return value.strip() if isinstance(value, str) else default


def _as_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    items = []
    for item in value:
        if isinstance(item, str) and item.strip():
            items.append(item.strip())
        elif isinstance(item, (int, float)) and not isinstance(item, bool):
            items.append(str(item))
    return items


def parse_suggested_tags(value: Any) -> list[SuggestedTag]:
    """
    Validate suggested tags given either as strings or as
    {"tag", "source", "confidence"} objects. Duplicates are dropped.
    """
    if not isinstance(value, list):
        return []

    tags: list[SuggestedTag] = []
    seen: set[str] = set()
    for item in value:
        if isinstance(item, str):
            tag, source, confidence = item.strip(), TagSource.NEW, DEFAULT_CONFIDENCE
        elif isinstance(item, dict):
            tag = _as_str(item.get("tag"))
            source = TagSource.EXISTING if item.get("source") == TagSource.EXISTING.value else TagSource.NEW
            confidence = validate_confidence(item.get("confidence"))
        else:
            continue

        if not tag or tag.lower() in seen:
            continue
        seen.add(tag.lower())
        tags.append(SuggestedTag(tag=tag, source=source, confidence=confidence))
    return tags


def parse_extracted_concept(raw: Any) -> Optional[ExtractedConcept]:
    """
    Map one raw concept object onto an ExtractedConcept.

    Returns None for entries that are not objects or have no name.
    """
    if not isinstance(raw, dict):
        return None

    name = _as_str(raw.get("name"))
    if not name:
        return None

    return ExtractedConcept(
        name=name,
        category=validate_category(raw.get("category")),
        description=_as_str(raw.get("description")),
        examples=_as_str_list(raw.get("examples")),
        source_content=_as_str(raw.get("sourceContent")),
        confidence=validate_confidence(raw.get("confidence")),
        suggested_difficulty=validate_difficulty(raw.get("suggestedDifficulty")),
        suggested_tags=parse_suggested_tags(raw.get("suggestedTags")),
    )


def parse_merge_suggestion(raw: Any) -> Optional[MergeSuggestion]:
    """Validate an optional mergeSuggestion object."""
    if not isinstance(raw, dict):
        return None
    suggested = raw.get("suggestedMergedDescription")
    return MergeSuggestion(
        reason=_as_str(raw.get("reason")),
        conflicting_fields=_as_str_list(raw.get("conflictingFields")),
        suggested_merged_description=suggested.strip() if isinstance(suggested, str) and suggested.strip() else None,
    )


def _response_items(data: Any, key: str, operation: str) -> list:
    """Return the list under key; a bare list of objects is accepted as-is."""
    if isinstance(data, list) and all(isinstance(item, dict) for item in data):
        return data
    if isinstance(data, dict) and isinstance(data.get(key), list):
        return data[key]
    raise LLMServiceError(
        f"Invalid LLM response format for {operation}: expected a '{key}' array",
        operation=operation,
    )


def parse_concepts_response(data: Any) -> list[ExtractedConcept]:
    """Validate an extraction response into ExtractedConcepts."""
    concepts = []
    for raw in _response_items(data, "concepts", LLMOperation.CONCEPT_EXTRACTION.value):
        concept = parse_extracted_concept(raw)
        if concept is None:
            logger.debug(f"Dropping unusable concept entry: {str(raw)[:100]}")
            continue
        concepts.append(concept)
    return concepts


def parse_similarity_response(
    data: Any,
    index_subset: list[ConceptIndexEntry],
    min_score: float,
    max_matches: int,
) -> list[SimilarityMatch]:
    """
    Validate a similarity response into SimilarityMatches.

    Matches must reference a concept that was offered in index_subset; the
    name, category and description are taken from that index entry. Merge
    score defaults to the similarity score. The result is filtered to
    similarity >= min_score, sorted best first, one match per concept, and
    cut to max_matches.
    """
    by_id = {entry.id: entry for entry in index_subset}
    best: dict[str, SimilarityMatch] = {}

    for raw in _response_items(data, "matches", LLMOperation.SIMILARITY_CHECK.value):
        if not isinstance(raw, dict):
            continue

        concept_id = str(raw.get("conceptId") or "")
        entry = by_id.get(concept_id)
        if entry is None:
            logger.debug(f"Dropping similarity match for unknown concept id {concept_id!r}")
            continue

        similarity = validate_confidence(raw.get("similarity"))
        if similarity < min_score:
            continue

        raw_merge_score = raw.get("mergeScore")
        merge_score = similarity if raw_merge_score is None else validate_confidence(raw_merge_score)

        match = SimilarityMatch(
            concept_id=entry.id,
            name=entry.name,
            category=entry.category,
            description=entry.description or _as_str(raw.get("description")),
            examples=_as_str_list(raw.get("examples")),
            similarity=similarity,
            merge_score=merge_score,
            merge_suggestion=parse_merge_suggestion(raw.get("mergeSuggestion")),
        )
        current = best.get(entry.id)
        if current is None or match.similarity > current.similarity:
            best[entry.id] = match

    matches = sorted(best.values(), key=lambda m: m.similarity, reverse=True)
    return matches[:max_matches]


# =============================================================================
# Gateway
# =============================================================================


class LLMGateway:
    """
    Timeout/retry/validation wrapper around the LLM client for extraction.

    Args:
        client: LLM client (defaults to the shared singleton)
        config: Extraction settings (defaults to the module singleton)
        sleep: Awaitable sleep used between retries
    """

    def __init__(
        self,
        client: Optional[LLMClient] = None,
        config: Optional[ExtractionSettings] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.client = client or get_llm_client()
        self.config = config or extraction_settings
        self._sleep = sleep

    @property
    def model(self) -> str:
        """Model identifier used for extraction calls."""
        return self.config.MODEL

    async def _call(
        self,
        operation: LLMOperation,
        prompt: str,
        system_prompt: str,
        parse: Callable[[str], T],
        json_mode: bool = True,
    ) -> T:
        """
        Run one logical model call under the timeout and retry policy.

        parse runs inside each attempt, so an unusable response is retried
        like a transport failure.
        """
        messages = build_messages(prompt, system_prompt=system_prompt)

        async def attempt() -> T:
            text, _usage = await with_timeout(
                lambda: self.client.complete(
                    operation=operation,
                    messages=messages,
                    temperature=self.config.TEMPERATURE,
                    max_tokens=self.config.MAX_TOKENS,
                    json_mode=json_mode,
                    model=self.config.MODEL,
                ),
                self.config.LLM_TIMEOUT_SECONDS,
                operation.value,
            )
            return parse(text)

        return await with_retry(
            attempt,
            max_attempts=self.config.LLM_MAX_ATTEMPTS,
            base_delay=self.config.RETRY_BASE_DELAY_SECONDS,
            operation=operation.value,
            sleep=self._sleep,
        )

    async def extract_concepts(self, content: ExtractionInput) -> list[ExtractedConcept]:
        """
        Extract candidate concepts from one slice of course content.

        Args:
            content: Keywords, new words, notes, practice and homework text

        Returns:
            Validated ExtractedConcepts (nameless entries dropped)

        Raises:
            LLMServiceError: On timeout, unparseable output or exhausted retries
        """
        operation = LLMOperation.CONCEPT_EXTRACTION
        prompt = EXTRACTION_PROMPT.format(
            keywords=json.dumps(content.keywords, ensure_ascii=False),
            new_words=json.dumps(content.new_words, ensure_ascii=False),
            notes=content.notes,
            practice=content.practice,
            homework_line=f"- Homework: {content.homework}\n" if content.homework else "",
        )

        logger.info(
            f"Starting concept extraction (keywords={len(content.keywords)}, "
            f"notes={len(content.notes)} chars, practice={len(content.practice)} chars, "
            f"new_words={len(content.new_words)}, homework={bool(content.homework)})"
        )

        concepts = await self._call(
            operation,
            prompt,
            CONCEPT_EXTRACTION_SYSTEM_PROMPT,
            lambda text: parse_concepts_response(parse_json_response(text, operation.value)),
        )

        logger.info(f"Concept extraction completed: {len(concepts)} concepts")
        return concepts

    async def score_similarity(
        self,
        candidate: ExtractedConcept,
        index: list[ConceptIndexEntry],
    ) -> list[SimilarityMatch]:
        """
        Compare a candidate with existing concepts.

        Only the first SIMILARITY_INDEX_SUBSET index entries are offered to
        the model. An empty index returns [] without calling the model.

        Args:
            candidate: Extracted concept to compare
            index: Active concept index

        Returns:
            Up to SIMILARITY_MAX_MATCHES matches, best first

        Raises:
            LLMServiceError: On timeout, unparseable output or exhausted retries
        """
        if not index:
            return []

        operation = LLMOperation.SIMILARITY_CHECK
        subset = index[: self.config.SIMILARITY_INDEX_SUBSET]
        prompt = SIMILARITY_PROMPT.format(
            extracted_concept=json.dumps(candidate.model_dump(mode="json"), ensure_ascii=False, indent=2),
            existing_concepts=json.dumps(
                [entry.model_dump(mode="json") for entry in subset], ensure_ascii=False, indent=2
            ),
            min_score=self.config.SIMILARITY_MIN_SCORE,
            max_matches=self.config.SIMILARITY_MAX_MATCHES,
        )

        logger.debug(f"Checking similarity for '{candidate.name}' against {len(subset)} concepts")

        matches = await self._call(
            operation,
            prompt,
            SIMILARITY_SYSTEM_PROMPT,
            lambda text: parse_similarity_response(
                parse_json_response(text, operation.value),
                subset,
                min_score=self.config.SIMILARITY_MIN_SCORE,
                max_matches=self.config.SIMILARITY_MAX_MATCHES,
            ),
        )

        logger.debug(f"Similarity check for '{candidate.name}' found {len(matches)} matches")
        return matches

    async def free_text(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        """
        Plain text completion under the same timeout and retry policy.

        Raises:
            LLMServiceError: On timeout, empty output or exhausted retries
        """
        operation = LLMOperation.FREE_TEXT

        def parse(text: str) -> str:
            if not text or not text.strip():
                raise LLMServiceError("Empty LLM response", operation=operation.value)
            return text.strip()

        return await self._call(
            operation,
            prompt,
            system_prompt or FREE_TEXT_SYSTEM_PROMPT,
            parse,
            json_mode=False,
        )
