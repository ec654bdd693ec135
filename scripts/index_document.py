#!/usr/bin/env python
"""Index, list and delete documents in the vector store.

Usage:
    python scripts/index_document.py report.pdf             # Index a PDF
    python scripts/index_document.py notes.txt --store-id n1 # Index text under a fixed id
    python scripts/index_document.py --list                 # Show indexed documents
    python scripts/index_document.py --delete n1            # Remove a document
"""
import argparse
import asyncio
import sys
import uuid
from datetime import datetime
from pathlib import Path

from docqa import config
from docqa.logging_config import configure_logging
from docqa.rag.errors import RAGError
from docqa.rag.pdf import extract_text_per_page, join_pages
from docqa.rag.store import VectorStore
import structlog

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self):
        self.start_time = None

    def start(self, message: str):
        """Start progress reporting."""
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def finish(self, store_id: str, file_name: str, pages: int, chunks: int):
        """Finish progress reporting."""
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print(f"  Indexing Complete!")
        print(f"{'=' * 60}\n")
        print(f"  Store id:        {store_id}")
        print(f"  File:            {file_name}")
        print(f"  Pages:           {pages}")
        print(f"  Chunks created:  {chunks}")
        print(f"  Time elapsed:    {elapsed_seconds:.1f}s")
        print(f"\n{'=' * 60}\n")


def read_document(path: Path):
    """Return (text, page_count, page_starts) for a PDF or text file."""
    if path.suffix.lower() == ".pdf":
        with open(path, "rb") as f:
            pages = extract_text_per_page(f)
        text, page_starts = join_pages(pages)
        return text, len(pages), page_starts

    return path.read_text(encoding="utf-8"), 0, None


async def list_documents(store: VectorStore) -> None:
    store_ids = sorted(await store.list_indexes())
    if not store_ids:
        print("\nNo indexed documents.\n")
        return

    print(f"\n{len(store_ids)} indexed document(s):\n")
    for store_id in store_ids:
        metadata = await store.get_metadata(store_id)
        if metadata is None:
            print(f"  {store_id}  (no metadata)")
            continue
        print(
            f"  {store_id}  {metadata.file_name}  "
            f"{metadata.chunk_count} chunks  {metadata.page_count} pages  "
            f"{metadata.created_at.isoformat()}"
        )
    print()


async def main():
    """Main entry point for the indexing script."""
    parser = argparse.ArgumentParser(
        description="Manage indexed documents for the RAG pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/index_document.py report.pdf
  python scripts/index_document.py --list
  python scripts/index_document.py --delete <store-id>
        """,
    )

    parser.add_argument("path", type=Path, nargs="?", help="PDF or text file to index")
    parser.add_argument("--store-id", default=None, help="Store id (default: new uuid)")
    parser.add_argument("--list", action="store_true", help="List indexed documents")
    parser.add_argument("--delete", metavar="STORE_ID", help="Delete an indexed document")
    parser.add_argument(
        "--store-dir",
        type=Path,
        default=None,
        help=f"Vector store directory (default: {config.VECTOR_STORE_DIR})",
    )

    args = parser.parse_args()
    configure_logging()

    store = VectorStore(store_dir=args.store_dir)

    try:
        if args.list:
            await list_documents(store)
            return

        if args.delete:
            if await store.delete_index(args.delete):
                print(f"\nDeleted {args.delete}\n")
            else:
                print(f"\nNo such store: {args.delete}\n")
                sys.exit(1)
            return

        if args.path is None:
            parser.error("a file to index is required unless --list or --delete is given")

        print("\n📋 Configuration:")
        print(f"   Store directory:  {store.store_dir}")
        print(f"   Embedding model:  {config.EMBEDDING_MODEL}")
        print(f"   Chunk size:       {config.CHUNK_SIZE} chars")
        print(f"   Chunk overlap:    {config.CHUNK_OVERLAP} chars")

        progress = ProgressReporter()
        progress.start(f"Indexing {args.path.name}")

        text, page_count, page_starts = read_document(args.path)
        store_id = args.store_id or str(uuid.uuid4())

        summary = await store.create_index(
            store_id,
            text,
            args.path.name,
            page_count=page_count,
            page_starts=page_starts,
        )

        progress.finish(store_id, args.path.name, summary.page_count, summary.chunk_count)

    except KeyboardInterrupt:
        print("\n\n⚠️  Indexing cancelled by user.\n")
        sys.exit(1)

    except (FileNotFoundError, RAGError, ValueError) as e:
        print(f"\n❌ Error: {e}\n")
        sys.exit(1)

    except Exception as e:
        print(f"\n❌ Error: {e}\n")
        logger.error("index_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
