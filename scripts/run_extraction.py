#!/usr/bin/env python3
"""
Concept Extraction Script

Run the concept extraction pipeline for a course, inspect sessions, and
clean up old sessions.

Setup:
    1. Set DATABASE_URL (or the POSTGRES_* variables) in .env
    2. Set the API key for the configured model (EXTRACTION_MODEL, default openai/gpt-4o)
    3. Run any command below

Usage:
    # Create tables if they do not exist yet
    python run_extraction.py init-db

    # Extract concepts for a course (runs to completion)
    python run_extraction.py extract 12

    # Resume an interrupted session
    python run_extraction.py resume <session_id>

    # Show a session's progress
    python run_extraction.py status <session_id>
    python run_extraction.py status <session_id> --format json

    # Show or run session cleanup
    python run_extraction.py cleanup --stats
    python run_extraction.py cleanup

Environment Variables (set in .env or environment):
    - DATABASE_URL: async SQLAlchemy URL (e.g. sqlite+aiosqlite:///./conceptlab.db)
    - OPENAI_API_KEY / ANTHROPIC_API_KEY / GEMINI_API_KEY: provider keys
    - EXTRACTION_*: any extraction setting (e.g. EXTRACTION_LLM_TIMEOUT_SECONDS=60)
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add backend to path for imports (must be before conceptlab.* imports)
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from dotenv import load_dotenv

project_root = Path(__file__).parent.parent
load_dotenv(project_root / ".env")

from conceptlab.config import settings
from conceptlab.db import async_session_maker, init_db
from conceptlab.errors import build_error_response
from conceptlab.services.extraction import ConceptExtractionService


def setup_logging(debug: bool = False) -> None:
    """Configure logging from LOG_LEVEL; --debug forces DEBUG."""
    level = logging.DEBUG if debug else settings.LOG_LEVEL.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    # Reduce noise from HTTP and database libs (unless --debug)
    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("LiteLLM").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)


def report_error(exc: Exception, debug: bool = False) -> None:
    """Print the structured error payload for a failed command."""
    response = build_error_response(exc, debug=debug)
    print(f"❌ {response.message}")
    print(f"   Error: {response.error} (id {response.error_id})")
    if response.details:
        print(f"   Details: {json.dumps(response.details, ensure_ascii=False)}")


# =============================================================================
# Commands
# =============================================================================


async def extract(service: ConceptExtractionService, course_id: int) -> None:
    result = await service.run_extraction(course_id)
    stats = result.statistics

    print("\n" + "=" * 60)
    print(f"✅ Extraction {result.extraction_id} completed")
    print("=" * 60)
    print(f"  Concepts:         {stats.total_concepts}")
    print(f"  High confidence:  {stats.high_confidence_count}")
    print(f"  Avg confidence:   {stats.average_confidence:.2f}")
    print(f"  Chunks processed: {stats.chunks_processed}")
    print(f"  Time:             {stats.processing_time}s")
    print(f"  LLM usage:        {service.gateway.client.totals.summary()}")


async def resume(service: ConceptExtractionService, session_id: str) -> None:
    result = await service.resume_extraction(session_id)
    print(f"✅ Session {result.extraction_id} completed with {result.statistics.total_concepts} concepts")


async def status(service: ConceptExtractionService, session_id: str, output_format: str) -> None:
    session = await service.get_session_status(session_id)

    if output_format == "json":
        print(json.dumps(session.model_dump(mode="json"), indent=2, ensure_ascii=False))
        return

    progress = session.progress
    print(f"\n📋 {session.course_name}")
    print(f"   Session:   {session.session_id}")
    print(f"   Status:    {session.status.value} ({progress.phase.value})")
    print(f"   Operation: {progress.current_operation}")
    print(f"   Chunks:    {progress.processed_chunks}/{progress.total_chunks}")
    print(f"   Concepts:  {progress.extracted_concepts} (similarity checked: {progress.similarity_checked})")
    if session.error_message:
        print(f"   ❌ Error:  {session.error_message}")

    for position, concept in enumerate(session.extracted_concepts):
        matches = session.matches_for(position)
        best = f" ~ {matches[0].name} ({matches[0].similarity:.2f})" if matches else ""
        print(f"     • [{concept.category.value}] {concept.name} ({concept.confidence:.2f}){best}")


async def cleanup(service: ConceptExtractionService, stats_only: bool) -> None:
    if stats_only:
        stats = await service.get_cleanup_stats()
        print(f"Total sessions:          {stats.total_sessions}")
        print(f"Archived (to delete):    {stats.archived_sessions}")
        print(f"Stale (to delete):       {stats.stale_sessions}")
        print(f"Reviewed (to archive):   {stats.old_reviewed_sessions}")
        return

    result = await service.perform_cleanup()
    print(
        f"🧹 Deleted {result.archived_deleted} archived and {result.stale_deleted} stale sessions, "
        f"archived {result.reviewed_archived} reviewed sessions"
    )


# =============================================================================
# CLI
# =============================================================================


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        description="Extract and deduplicate concepts from course material",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("init-db", help="Create database tables")

    extract_parser = subparsers.add_parser("extract", help="Run extraction for a course")
    extract_parser.add_argument("course_id", type=int, help="Course id")

    resume_parser = subparsers.add_parser("resume", help="Resume an interrupted session")
    resume_parser.add_argument("session_id", help="Extraction session id")

    status_parser = subparsers.add_parser("status", help="Show a session's progress")
    status_parser.add_argument("session_id", help="Extraction session id")
    status_parser.add_argument(
        "--format",
        choices=["summary", "json"],
        default="summary",
        help="Output format (default: summary)",
    )

    cleanup_parser = subparsers.add_parser("cleanup", help="Delete and archive old sessions")
    cleanup_parser.add_argument(
        "--stats", action="store_true", help="Only show what would be cleaned up"
    )

    return parser


async def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.debug)

    if args.command == "init-db":
        await init_db()
        print("✅ Database tables created")
        return 0

    service = ConceptExtractionService(async_session_maker)
    try:
        if args.command == "extract":
            await extract(service, args.course_id)
        elif args.command == "resume":
            await resume(service, args.session_id)
        elif args.command == "status":
            await status(service, args.session_id, args.format)
        elif args.command == "cleanup":
            await cleanup(service, args.stats)
    except Exception as e:
        report_error(e, args.debug)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
