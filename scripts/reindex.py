#!/usr/bin/env python
"""Reindex textbook markdown into the vector snapshot.

Usage:
    python scripts/reindex.py                          # Re-ingest into existing snapshot
    python scripts/reindex.py --rebuild                # Full rebuild from scratch
    python scripts/reindex.py --verbose                # Show detailed progress
    python scripts/reindex.py --find-duplicates 0.99   # Report near-duplicate chunks
"""
import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path

import structlog

from tutor import config
from tutor.engine import RAGEngine
from tutor.main import configure_logging

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.start_time = None

    def start(self, message: str):
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, current: int, total: int, source: str):
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * current / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total}) {source[-30:]:<30}",
            end="",
            flush=True,
        )

        if self.verbose:
            print()

    def finish(self, stats: dict, index_stats: dict, snapshot: Path):
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print("  Indexing Complete!")
        print(f"{'=' * 60}\n")
        print(f"  📁 Files processed:      {stats['files_processed']}")
        print(f"  ❌ Files failed:         {stats['files_failed']}")
        print(f"  📝 Chunks processed:     {stats['chunks_processed']}")
        print(f"  🧮 Vectors stored:       {stats['vectors_stored']}")
        print(f"  📦 Vectors in index:     {index_stats['total_vectors']}")
        print(f"  💾 Approx. memory:       {index_stats['approx_memory_usage_mb']} MB")
        print(f"  ⏱️  Time elapsed:         {elapsed_seconds:.1f}s")

        if stats["chunks_processed"] > 0 and elapsed_seconds > 0:
            rate = stats["chunks_processed"] / elapsed_seconds
            print(f"  ⚡ Indexing rate:        {rate:.1f} chunks/sec")

        print(f"\n{'=' * 60}\n")

        if stats["files_failed"] > 0:
            print(f"⚠️  Warning: {stats['files_failed']} file(s) failed to index.")
            print("   Check logs for details.\n")

        if stats["files_processed"] > 0:
            print(f"✅ Snapshot saved to: {snapshot}\n")


def report_duplicates(engine: RAGEngine, threshold: float) -> None:
    duplicates = engine.store.find_duplicates(threshold)
    if not duplicates:
        print(f"No chunk pairs with similarity >= {threshold}.\n")
        return

    print(f"Found {len(duplicates)} near-duplicate pair(s) (>= {threshold}):")
    for pair in duplicates:
        print(f"  {pair['similarity']:.4f}  {pair['id1']}  <->  {pair['id2']}")
    print()


async def main():
    """Main entry point for reindex script."""
    parser = argparse.ArgumentParser(
        description="Reindex textbook markdown for the RAG pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/reindex.py                          # Re-ingest into existing snapshot
  python scripts/reindex.py --rebuild                # Full rebuild from scratch
  python scripts/reindex.py --find-duplicates 0.99   # Report near-duplicates only
        """,
    )

    parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Rebuild index from scratch (ignores the existing snapshot)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show verbose progress output",
    )
    parser.add_argument(
        "--notes-dir",
        type=Path,
        default=None,
        help=f"Notes directory (default: {config.NOTES_DIR})",
    )
    parser.add_argument(
        "--snapshot",
        type=Path,
        default=None,
        help=f"Snapshot file (default: {config.SNAPSHOT_PATH})",
    )
    parser.add_argument(
        "--find-duplicates",
        type=float,
        metavar="THRESHOLD",
        default=None,
        help="Only scan the existing snapshot for near-duplicate chunks",
    )

    args = parser.parse_args()
    configure_logging("DEBUG" if args.verbose else "WARNING")

    notes_dir = args.notes_dir or config.NOTES_DIR
    snapshot = args.snapshot or config.SNAPSHOT_PATH
    progress = ProgressReporter(verbose=args.verbose)
    engine = RAGEngine.from_config()
    engine.snapshot_path = snapshot

    try:
        if args.find_duplicates is not None:
            if not await engine.load():
                print(f"\n❌ Error: snapshot not found: {snapshot}\n")
                sys.exit(1)
            report_duplicates(engine, args.find_duplicates)
            return

        print("\n📋 Configuration:")
        print(f"   Notes directory:  {notes_dir}")
        print(f"   Snapshot:         {snapshot}")
        print(f"   Embedding model:  {config.EMBEDDING_MODEL} ({config.EMBEDDING_DIMENSIONS} dims)")
        print(f"   Chunk size:       {config.CHUNK_MAX_WORDS} words max, {config.CHUNK_MIN_WORDS} min")
        print(f"   Chunk overlap:    {config.CHUNK_OVERLAP_WORDS} words")

        if args.rebuild:
            print("\n⚠️  Rebuild mode: the existing snapshot will be replaced!")
            print("   Press Ctrl+C within 3 seconds to cancel...")
            await asyncio.sleep(3)
        else:
            await engine.load()

        action = "Rebuilding" if args.rebuild else "Indexing"
        progress.start(f"{action} Textbook")

        stats = await engine.ingest_directory(notes_dir, progress_callback=progress.update)
        await engine.save()

        progress.finish(stats, engine.stats(), snapshot)

        if stats["files_failed"] > 0:
            sys.exit(1)

    except KeyboardInterrupt:
        print("\n\n⚠️  Indexing cancelled by user.\n")
        sys.exit(1)

    except FileNotFoundError as e:
        print(f"\n❌ Error: {e}\n")
        sys.exit(1)

    except Exception as e:
        print(f"\n❌ Error: {e}\n")
        logger.error("reindex_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
