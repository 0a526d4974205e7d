"""
Concept Lab Test Suite

Unit tests for the concept extraction and deduplication pipeline.

Test Structure:
    tests/
    ├── conftest.py          # Shared fixtures (SQLite engine, settings, LLM double)
    ├── factories.py         # Builders for extracted concepts and database rows
    └── unit/                # Unit tests (no network, in-memory database)
        ├── test_response_parsing.py     # Tolerant JSON parsing
        ├── test_resilience.py           # Timeout and retry combinators
        ├── test_llm_client.py           # LiteLLM wrapper and usage totals
        ├── test_llm_gateway.py          # Field validation and gateway calls
        ├── test_content_chunker.py      # Chunk planning
        ├── test_index_cache.py          # TTL cache
        ├── test_duplication_detector.py # Name collisions
        ├── test_concept_manager.py      # Concept store operations
        ├── test_concept_merger.py       # Merging and previews
        ├── test_session_store.py        # Session persistence
        ├── test_extraction_orchestrator.py  # State machine end to end
        ├── test_review.py               # Applying review decisions
        ├── test_session_cleanup.py      # Session housekeeping
        ├── test_extraction_service.py   # Caller-facing facade
        ├── test_cli.py                  # run_extraction.py error output and logging
        └── test_config.py               # Settings and error payloads

Running Tests:
    # Run all tests
    pytest backend/tests/ -v

    # Run one module
    pytest backend/tests/unit/test_concept_merger.py -v
"""
