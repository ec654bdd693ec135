"""Tests for the per-document vector store."""
import asyncio
import json

import httpx
import pytest

from docqa.rag.chunker import split_text
from docqa.rag.errors import EmbeddingFailure, EmptyDocument, StoreNotFound
from docqa.rag.store import METADATA_FILE, STORE_FILE, StoreMetadata

TEXT = "Alpha beta gamma delta. " * 30


async def test_create_index_builds_aligned_entry(store):
    summary = await store.create_index("doc-1", TEXT, "report.pdf", page_count=3)

    entry = await store.load("doc-1")
    assert summary.page_count == 3
    assert summary.chunk_count == len(entry)
    assert len(entry.chunks) == len(entry.embeddings) == len(entry.metadata)
    for idx, meta in enumerate(entry.metadata):
        assert meta.chunk_index == idx
        assert meta.source == "report.pdf"
        assert meta.file_name == "report.pdf"


async def test_create_index_writes_both_records(store, store_dir):
    await store.create_index("doc-1", TEXT, "report.pdf", page_count=2)

    stored = json.loads((store_dir / "doc-1" / STORE_FILE).read_text())
    assert set(stored) == {"chunks", "embeddings", "metadata"}
    assert stored["metadata"][0] == {
        "source": "report.pdf",
        "chunkIndex": 0,
        "fileName": "report.pdf",
    }

    metadata = json.loads((store_dir / "doc-1" / METADATA_FILE).read_text())
    assert metadata["fileName"] == "report.pdf"
    assert metadata["pageCount"] == 2
    assert metadata["textLength"] == len(TEXT)
    assert metadata["chunkCount"] == len(stored["chunks"])
    assert "createdAt" in metadata


@pytest.mark.parametrize("text", ["", "   \n\t  "])
async def test_empty_document_rejected_before_embedding(store, fake_client, text):
    with pytest.raises(EmptyDocument):
        await store.create_index("doc-1", text, "empty.pdf")

    assert fake_client.embedding_calls == []
    assert await store.list_indexes() == set()


async def test_reload_from_disk_is_lossless(store, make_store):
    await store.create_index("doc-1", TEXT, "report.pdf")
    original = await store.load("doc-1")

    fresh = make_store()
    assert not fresh.is_cached("doc-1")

    reloaded = await fresh.load("doc-1")
    assert fresh.is_cached("doc-1")
    assert reloaded.chunks == original.chunks
    assert reloaded.embeddings == original.embeddings
    assert reloaded.metadata == original.metadata


async def test_load_missing_returns_none(store):
    assert await store.load("missing") is None


async def test_delete_removes_entry(store):
    await store.create_index("doc-1", TEXT, "report.pdf")

    assert await store.delete_index("doc-1") is True
    assert await store.load("doc-1") is None
    assert "doc-1" not in await store.list_indexes()
    assert await store.delete_index("doc-1") is False


async def test_list_indexes_ignores_hidden_and_incomplete_dirs(store, store_dir):
    await store.create_index("doc-1", TEXT, "a.pdf")
    await store.create_index("doc-2", TEXT, "b.pdf")
    (store_dir / ".doc-3.staging").mkdir()
    (store_dir / "doc-4").mkdir()

    assert await store.list_indexes() == {"doc-1", "doc-2"}


async def test_recreate_replaces_whole_entry(store, make_store):
    await store.create_index("doc-1", TEXT, "old.pdf")
    await store.create_index("doc-1", "short text", "new.pdf")

    entry = await make_store().load("doc-1")
    assert entry.chunks == ["short text"]
    assert entry.metadata[0].source == "new.pdf"


async def test_embedding_failure_leaves_no_entry(store, store_dir, fake_client):
    fake_client.embedding_error = httpx.ConnectError("provider down")

    with pytest.raises(EmbeddingFailure) as excinfo:
        await store.create_index("doc-1", TEXT, "report.pdf")

    assert isinstance(excinfo.value.cause, httpx.ConnectError)
    assert await store.load("doc-1") is None
    assert not store_dir.exists() or list(store_dir.iterdir()) == []


async def test_concurrent_creates_leave_one_consistent_entry(store, make_store):
    text_a = "aaaa " * 50
    text_b = "bbbb " * 70

    await asyncio.gather(
        store.create_index("doc-1", text_a, "a.pdf"),
        store.create_index("doc-1", text_b, "b.pdf"),
    )

    entry = await make_store().load("doc-1")
    source = entry.metadata[0].source
    expected = text_a if source == "a.pdf" else text_b
    assert entry.chunks == split_text(expected, 100, 20)
    assert all(meta.source == source for meta in entry.metadata)
    assert (await store.load("doc-1")).metadata[0].source == source
    assert store._locks == {}


async def test_metadata_roundtrip(store):
    await store.create_index("doc-1", TEXT, "report.pdf", page_count=1)

    metadata = await store.get_metadata("doc-1")
    updated = await store.save_metadata(
        "doc-1", {**metadata.model_dump(by_alias=True), "pageCount": 9}
    )

    assert isinstance(updated, StoreMetadata)
    assert (await store.get_metadata("doc-1")).page_count == 9


async def test_save_metadata_requires_existing_entry(store):
    with pytest.raises(StoreNotFound):
        await store.save_metadata(
            "missing",
            {"fileName": "x.pdf", "createdAt": "2026-01-01T00:00:00Z"},
        )


async def test_corrupt_entry_treated_as_missing(store, store_dir):
    await store.create_index("doc-1", TEXT, "report.pdf")
    (store_dir / "doc-1" / STORE_FILE).write_text('{"chunks": ["a"], "embeddings": []}')

    fresh_store = type(store)(store_dir=store_dir, chunker=store.chunker, embedder=store.embedder)
    assert await fresh_store.load("doc-1") is None


@pytest.mark.parametrize("bad_id", ["", "../escape", ".hidden", "a/b"])
async def test_invalid_document_ids_rejected(store, bad_id):
    with pytest.raises(ValueError):
        await store.load(bad_id)


async def test_locks_released_after_use(store):
    for i in range(50):
        assert await store.load(f"missing-{i}") is None

    await store.create_index("doc-1", TEXT, "report.pdf")
    await store.delete_index("doc-1")
    with pytest.raises(StoreNotFound):
        await store.save_metadata(
            "doc-1", {"fileName": "x.pdf", "createdAt": "2026-01-01T00:00:00Z"}
        )

    assert store._locks == {}
    assert store._lock_users == {}
