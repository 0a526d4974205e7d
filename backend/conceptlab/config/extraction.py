"""
Concept Extraction Configuration

Configuration settings for the concept extraction pipeline. These settings
control the LLM call policy (timeout, retries, model), the chunking
heuristics, rate limiting between chunks and similarity batches, the concept
index cache, merge behaviour and session cleanup ages.

All settings can be overridden via environment variables with EXTRACTION_ prefix.

Usage:
    from conceptlab.config.extraction import extraction_settings

    timeout = extraction_settings.LLM_TIMEOUT_SECONDS
    batch_size = extraction_settings.SIMILARITY_BATCH_SIZE
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class ExtractionSettings(BaseSettings):
    """
    Concept extraction configuration.

    Attributes are grouped by category:
    - LLM call policy
    - Similarity scoring
    - Orchestration pacing
    - Concept index cache
    - Content chunking
    - Merging
    - Session cleanup
    """

    # =========================================================================
    # LLM CALL POLICY
    # =========================================================================
    # Model identifiers use LiteLLM format: provider/model-name

    MODEL: str = "openai/gpt-4o"
    TEMPERATURE: float = 0.3
    MAX_TOKENS: int = 2000

    # Each call races the provider against this timeout (seconds)
    LLM_TIMEOUT_SECONDS: float = 30.0

    # Total attempts per call; delay before retry n is n * RETRY_BASE_DELAY_SECONDS
    LLM_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY_SECONDS: float = 1.0

    # =========================================================================
    # SIMILARITY SCORING
    # =========================================================================

    # Number of index entries offered to the model per candidate
    SIMILARITY_INDEX_SUBSET: int = 20

    # Matches below this score are discarded
    SIMILARITY_MIN_SCORE: float = 0.3

    # Matches kept per candidate, best first
    SIMILARITY_MAX_MATCHES: int = 3

    # =========================================================================
    # ORCHESTRATION PACING
    # =========================================================================
    # Fixed delays bound the request rate against the provider

    INTER_CHUNK_DELAY_SECONDS: float = 1.5
    SIMILARITY_BATCH_SIZE: int = 3
    INTER_BATCH_DELAY_SECONDS: float = 1.0

    # Concepts above this confidence count as high-confidence in statistics
    HIGH_CONFIDENCE_THRESHOLD: float = 0.8

    # =========================================================================
    # CONCEPT INDEX CACHE
    # =========================================================================

    INDEX_CACHE_TTL_SECONDS: float = 300.0

    # =========================================================================
    # CONTENT CHUNKING
    # =========================================================================

    MAX_CHUNK_SIZE: int = 3000  # Characters per chunk to stay under token limits
    MIN_CHUNK_SIZE: int = 500  # Smallest segment worth sending on its own
    OVERLAP_SIZE: int = 100  # Characters carried over from the previous segment
    PRESERVE_STRUCTURE: bool = True  # Split at paragraph/sentence boundaries
    TARGET_CONCEPTS_PER_CHUNK: int = 5
    KEYWORD_GROUP_SIZE: int = 15

    # =========================================================================
    # MERGING
    # =========================================================================

    # Course links moved onto a merge target never fall below this confidence
    MERGED_LINK_MIN_CONFIDENCE: float = 0.8

    # =========================================================================
    # SESSION CLEANUP
    # =========================================================================

    CLEANUP_ARCHIVED_AFTER_DAYS: int = 30
    CLEANUP_STALE_EXTRACTED_AFTER_DAYS: int = 7
    ARCHIVE_REVIEWED_AFTER_DAYS: int = 90

    class Config:
        env_prefix = "EXTRACTION_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_extraction_settings() -> ExtractionSettings:
    """Get cached extraction settings instance."""
    return ExtractionSettings()


# Convenience instance
extraction_settings = get_extraction_settings()
