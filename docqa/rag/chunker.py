"""Text chunking with overlap for RAG pipeline.

Implements fixed-width character windows to avoid tokenizer dependencies.
Every chunk starts ``chunk_size - chunk_overlap`` characters after its
predecessor, so dropping the first ``chunk_overlap`` characters of each
chunk after the first and concatenating reproduces the source text.
"""
from bisect import bisect_right
from typing import List, Optional, Sequence
from dataclasses import dataclass
import structlog

from docqa import config

logger = structlog.get_logger()


@dataclass(frozen=True)
class Chunk:
    """A contiguous slice of a document's text."""

    content: str
    document_id: str
    chunk_index: int
    char_start: int
    char_end: int
    page_number: Optional[int] = None


def split_text(text: str, chunk_size: int, chunk_overlap: int) -> List[str]:
    """Split text into overlapping fixed-width windows.

    Args:
        text: Text to split (may be empty)
        chunk_size: Window length in characters
        chunk_overlap: Characters shared with the previous window

    Returns:
        Ordered list of chunk texts; the last one is truncated, never padded

    Raises:
        ValueError: Unless chunk_size > chunk_overlap >= 0
    """
    return [text[start:end] for start, end in _windows(len(text), chunk_size, chunk_overlap)]


def _windows(text_length: int, chunk_size: int, chunk_overlap: int) -> List[tuple]:
    if chunk_overlap < 0 or chunk_size <= chunk_overlap:
        raise ValueError(
            f"Overlap ({chunk_overlap}) must be non-negative and less than "
            f"chunk size ({chunk_size})"
        )

    spans = []
    start = 0
    while start < text_length:
        end = min(start + chunk_size, text_length)
        spans.append((start, end))
        if end == text_length:
            break

        next_start = start + chunk_size - chunk_overlap
        # Stop if the window would not advance
        if next_start <= start:
            break
        start = next_start

    return spans


class TextChunker:
    """Character-based text chunker with overlap support."""

    def __init__(
        self,
        chunk_size: int = None,
        chunk_overlap: int = None,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Size of each chunk in characters (default from config)
            chunk_overlap: Overlap between chunks in characters (default from config)
        """
        self.chunk_size = chunk_size if chunk_size is not None else config.CHUNK_SIZE
        self.chunk_overlap = (
            chunk_overlap if chunk_overlap is not None else config.CHUNK_OVERLAP
        )

        if self.chunk_overlap < 0 or self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"Overlap ({self.chunk_overlap}) must be non-negative and less than "
                f"chunk size ({self.chunk_size})"
            )

    def chunk_text(
        self,
        text: str,
        document_id: str,
        page_starts: Optional[Sequence[int]] = None,
    ) -> List[Chunk]:
        """Split text into overlapping chunks.

        Args:
            text: Text to chunk
            document_id: Identifier of the source document
            page_starts: Ascending character offsets where each page begins;
                when given, every chunk is tagged with the 1-based page its
                first character falls on

        Returns:
            List of Chunk objects
        """
        if not text:
            return []

        spans = _windows(len(text), self.chunk_size, self.chunk_overlap)
        chunks = [
            Chunk(
                content=text[start:end],
                document_id=document_id,
                chunk_index=idx,
                char_start=start,
                char_end=end,
                page_number=_page_for_offset(page_starts, start),
            )
            for idx, (start, end) in enumerate(spans)
        ]

        logger.info(
            "text_chunked",
            document_id=document_id,
            text_length=len(text),
            chunk_count=len(chunks),
        )

        return chunks


def _page_for_offset(page_starts: Optional[Sequence[int]], offset: int) -> Optional[int]:
    if not page_starts:
        return None
    return max(bisect_right(page_starts, offset), 1)
