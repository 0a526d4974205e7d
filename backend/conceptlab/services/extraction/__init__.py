"""
Concept Extraction Module

Turns course material into deduplicated concept records.

Key Components:
- chunker.py: ContentChunker plans how course content is split
- gateway.py: LLMGateway wraps extraction and similarity calls
- index_cache.py: ConceptIndexCache holds the active concept index
- duplicates.py: DuplicationDetector finds name collisions
- concept_manager.py: ConceptManager creates, updates and links concepts
- merger.py: ConceptMerger consolidates concepts
- session_store.py: ExtractionSessionStore persists session checkpoints
- orchestrator.py: ExtractionOrchestrator drives the session state machine
- review.py: ReviewService applies reviewer decisions
- cleanup.py: SessionCleanupService removes old sessions
- service.py: ConceptExtractionService, the caller-facing facade

Usage:
    from conceptlab.services.extraction import ConceptExtractionService

    service = ConceptExtractionService(async_session_maker)
    session_id = await service.start_extraction(course_id=5)
"""

from conceptlab.services.extraction.chunker import ChunkingConfig, ContentChunker
from conceptlab.services.extraction.cleanup import SessionCleanupService
from conceptlab.services.extraction.concept_manager import ConceptManager
from conceptlab.services.extraction.duplicates import DuplicationDetector
from conceptlab.services.extraction.gateway import LLMGateway
from conceptlab.services.extraction.index_cache import ConceptIndexCache
from conceptlab.services.extraction.merger import ConceptMerger, validate_merge_compatibility
from conceptlab.services.extraction.orchestrator import ExtractionOrchestrator
from conceptlab.services.extraction.review import ReviewService
from conceptlab.services.extraction.service import ConceptExtractionService
from conceptlab.services.extraction.session_store import ExtractionSessionStore

__all__ = [
    "ChunkingConfig",
    "ConceptExtractionService",
    "ConceptIndexCache",
    "ConceptManager",
    "ConceptMerger",
    "ContentChunker",
    "DuplicationDetector",
    "ExtractionOrchestrator",
    "ExtractionSessionStore",
    "LLMGateway",
    "ReviewService",
    "SessionCleanupService",
    "validate_merge_compatibility",
]
