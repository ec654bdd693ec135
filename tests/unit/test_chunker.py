"""Tests for fixed-width overlapping chunking."""
import pytest

from docqa.rag.chunker import TextChunker, split_text


def _reconstruct(chunks, overlap):
    return chunks[0] + "".join(chunk[overlap:] for chunk in chunks[1:])


def test_empty_text_yields_no_chunks():
    assert split_text("", 1000, 200) == []
    assert TextChunker(100, 20).chunk_text("", "doc") == []


def test_short_text_is_a_single_chunk():
    assert split_text("hello world", 1000, 200) == ["hello world"]


def test_default_window_positions():
    text = "".join(chr(ord("a") + i % 26) for i in range(2500))
    chunks = split_text(text, 1000, 200)

    assert [len(c) for c in chunks] == [1000, 1000, 900]
    assert chunks[1] == text[800:1800]
    assert chunks[2] == text[1600:]


@pytest.mark.parametrize(
    "length,chunk_size,overlap",
    [(1, 5, 0), (10, 5, 0), (11, 5, 2), (999, 100, 99), (2500, 1000, 200), (37, 7, 3)],
)
def test_chunks_reconstruct_text(length, chunk_size, overlap):
    text = "".join(chr(ord("a") + i % 26) for i in range(length))
    chunks = split_text(text, chunk_size, overlap)

    assert _reconstruct(chunks, overlap) == text
    assert all(len(c) <= chunk_size for c in chunks)


def test_last_chunk_ends_at_text_end():
    text = "x" * 1234
    chunks = TextChunker(100, 30).chunk_text(text, "doc")

    assert chunks[-1].char_end == len(text)
    assert [c.chunk_index for c in chunks] == list(range(len(chunks)))


def test_split_is_deterministic():
    text = "The quick brown fox jumps over the lazy dog. " * 40
    assert split_text(text, 120, 30) == split_text(text, 120, 30)


@pytest.mark.parametrize("chunk_size,overlap", [(100, 100), (100, 150), (100, -1)])
def test_invalid_overlap_rejected(chunk_size, overlap):
    with pytest.raises(ValueError):
        split_text("some text", chunk_size, overlap)
    with pytest.raises(ValueError):
        TextChunker(chunk_size, overlap)


def test_chunks_carry_document_id_and_pages():
    text = "a" * 150 + "b" * 150
    chunks = TextChunker(100, 20).chunk_text(text, "doc-1", page_starts=[0, 150])

    assert [c.char_start for c in chunks] == [0, 80, 160, 240]
    assert [c.page_number for c in chunks] == [1, 1, 2, 2]
    assert all(c.document_id == "doc-1" for c in chunks)


def test_pages_unknown_without_offsets():
    chunks = TextChunker(100, 20).chunk_text("a" * 250, "doc")
    assert all(c.page_number is None for c in chunks)
