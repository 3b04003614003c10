#!/usr/bin/env python
"""Register and ingest an extracted text file into the passage store.

Usage:
    python scripts/ingest_text.py notes.txt --title "Physics Ch.1" --pages 12
    python scripts/ingest_text.py notes.txt --doc-id 3 --pages 12   # resume/re-ingest
"""
import argparse
import asyncio
import sys
from pathlib import Path
from datetime import datetime

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from studymate import config
from studymate.errors import StudyMateError
from studymate.log import configure_logging
from studymate.service import StudyService
import structlog

logger = structlog.get_logger()


async def main():
    """Main entry point for the ingest script."""
    parser = argparse.ArgumentParser(
        description="Ingest extracted document text for retrieval and quizzes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/ingest_text.py notes.txt --title "Chapter 1" --pages 12
  python scripts/ingest_text.py notes.txt --doc-id 3 --pages 12
        """,
    )

    parser.add_argument("text_file", type=Path, help="UTF-8 file with extracted text")
    parser.add_argument("--pages", type=int, required=True, help="Page count of the source document")
    parser.add_argument("--title", help="Document title (registers a new document)")
    parser.add_argument("--doc-id", type=int, help="Existing document ID to (re)ingest")
    parser.add_argument("--owner", help="Owner recorded on a new document")
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help=f"SQLite database (default: {config.DB_PATH})",
    )

    args = parser.parse_args()
    configure_logging()

    if (args.title is None) == (args.doc_id is None):
        parser.error("pass exactly one of --title or --doc-id")

    service = StudyService(db_path=args.db)
    start = datetime.now()

    try:
        text = args.text_file.read_text(encoding="utf-8")

        doc_id = args.doc_id
        if doc_id is None:
            doc_id = service.register_document(
                args.title, args.pages, storage_ref=str(args.text_file), owner=args.owner
            )

        print("\n📋 Configuration:")
        print(f"   Document ID:      {doc_id}")
        print(f"   Window / overlap: {config.CHUNK_WORDS} / {config.CHUNK_OVERLAP_WORDS} words")
        print(f"   Embedding models: {', '.join(service.embedder.models)}")

        result = await service.ingest_document(text, args.pages, doc_id)

        elapsed = (datetime.now() - start).total_seconds()
        print(f"\n  Status:         {result.status}")
        print(f"  Chunks stored:  {result.chunks_stored}")
        print(f"  Time elapsed:   {elapsed:.1f}s")

        stats = service.get_stats()
        print(f"\n  Store totals:   {stats['document_count']} documents, {stats['passage_count']} passages")
        print(f"  Embeddings:     {stats['ingest']['embeddings_generated']} generated, "
              f"{stats['ingest']['embeddings_failed']} failed\n")

    except KeyboardInterrupt:
        print("\n\n⚠️  Ingestion cancelled. Rerun with --doc-id to resume.\n")
        sys.exit(1)

    except FileNotFoundError as e:
        print(f"\n❌ Error: {e}\n")
        sys.exit(1)

    except StudyMateError as e:
        print(f"\n❌ Error: {e.message}\n")
        if e.detail:
            print(f"   {e.detail}\n")
        logger.error("ingest_script_failed", error=e.message, error_type=type(e).__name__)
        sys.exit(1)

    finally:
        await service.aclose()


if __name__ == "__main__":
    asyncio.run(main())
