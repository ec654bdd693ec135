"""PDF text extraction for uploads."""
from typing import BinaryIO, List, Tuple

from pypdf import PdfReader

PAGE_SEPARATOR = "\n\n"


def extract_text_per_page(fileobj: BinaryIO) -> List[str]:
    reader = PdfReader(fileobj)
    return [page.extract_text() or "" for page in reader.pages]


def join_pages(pages: List[str]) -> Tuple[str, List[int]]:
    """Join page texts and record the offset where each page starts."""
    page_starts = []
    offset = 0
    for page in pages:
        page_starts.append(offset)
        offset += len(page) + len(PAGE_SEPARATOR)
    return PAGE_SEPARATOR.join(pages), page_starts
