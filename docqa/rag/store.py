"""Per-document vector store with disk persistence and an in-memory cache.

Handles:
- Chunking and embedding a document into one store entry
- Atomic persistence (one directory per document id)
- Lazy cache population on first read or write
- Whole-entry deletion and listing

Layout under ``store_dir``::

    <document_id>/store.json      chunks, embeddings, per-chunk metadata
    <document_id>/metadata.json   file name, timestamps and counts

Entries are staged in a hidden sibling directory and renamed into place,
so a reader never sees a half-written entry. The cache has no eviction;
memory grows with the number of distinct documents loaded by the process.
"""
import asyncio
import os
import re
import shutil
import tempfile
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set, Union

import numpy as np
import structlog
from pydantic import BaseModel, ConfigDict, PrivateAttr, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from docqa import config
from docqa.rag.chunker import TextChunker
from docqa.rag.embeddings import EmbeddingGateway
from docqa.rag.errors import EmptyDocument, StoreNotFound

logger = structlog.get_logger()

STORE_FILE = "store.json"
METADATA_FILE = "metadata.json"

_DOCUMENT_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChunkMetadata(_CamelModel):
    """Metadata stored alongside each chunk."""

    source: str
    chunk_index: int
    page_number: Optional[int] = None
    file_name: str


class StoreEntry(_CamelModel):
    """Chunks, vectors and metadata for one document, index-aligned."""

    chunks: List[str]
    embeddings: List[List[float]]
    metadata: List[ChunkMetadata]

    _matrix: Any = PrivateAttr(default=None)

    @model_validator(mode="after")
    def _check_alignment(self) -> "StoreEntry":
        if not (len(self.chunks) == len(self.embeddings) == len(self.metadata)):
            raise ValueError(
                f"Misaligned store entry: {len(self.chunks)} chunks, "
                f"{len(self.embeddings)} embeddings, {len(self.metadata)} metadata"
            )
        for idx, meta in enumerate(self.metadata):
            if meta.chunk_index != idx:
                raise ValueError(f"Metadata {idx} has chunk index {meta.chunk_index}")
        return self

    def __len__(self) -> int:
        return len(self.chunks)

    def vector_matrix(self) -> np.ndarray:
        """Embeddings as an (n, d) float array, built once per entry."""
        if self._matrix is None:
            self._matrix = np.asarray(self.embeddings, dtype=np.float64)
        return self._matrix


class StoreMetadata(_CamelModel):
    """Side record describing an indexed document."""

    file_name: str
    created_at: datetime
    chunk_count: int = 0
    page_count: int = 0
    text_length: int = 0


@dataclass
class IndexSummary:
    """Result of indexing one document."""

    page_count: int
    chunk_count: int


def check_document_id(document_id: str) -> str:
    """Reject identifiers that are not a single safe path component."""
    if not isinstance(document_id, str) or not _DOCUMENT_ID_RE.match(document_id):
        raise ValueError(f"Invalid document id: {document_id!r}")
    return document_id


class VectorStore:
    """Disk-backed store of per-document vector entries."""

    def __init__(
        self,
        store_dir: Path = None,
        chunker: Optional[TextChunker] = None,
        embedder: Optional[EmbeddingGateway] = None,
    ):
        """Initialize the vector store.

        Args:
            store_dir: Directory holding one subdirectory per document
                (default: config.VECTOR_STORE_DIR)
            chunker: Text chunker (default config chunk size and overlap)
            embedder: Embedding gateway used when indexing
        """
        self.store_dir = Path(store_dir or config.VECTOR_STORE_DIR)
        self.chunker = chunker or TextChunker()
        self.embedder = embedder or EmbeddingGateway()

        self._cache: Dict[str, StoreEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

        logger.info("vector_store_initialized", store_dir=str(self.store_dir))

    @asynccontextmanager
    async def _lock(self, document_id: str):
        """Hold the per-document lock; the entry is dropped once unused."""
        lock = self._locks.get(document_id)
        if lock is None:
            lock = self._locks[document_id] = asyncio.Lock()
        self._lock_users[document_id] = self._lock_users.get(document_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_users[document_id] - 1
            if remaining:
                self._lock_users[document_id] = remaining
            else:
                del self._lock_users[document_id]
                del self._locks[document_id]

    def _path(self, document_id: str) -> Path:
        return self.store_dir / document_id

    def is_cached(self, document_id: str) -> bool:
        return document_id in self._cache

    async def create_index(
        self,
        document_id: str,
        text: str,
        file_name: str,
        page_count: int = 0,
        page_starts: Optional[Sequence[int]] = None,
    ) -> IndexSummary:
        """Chunk, embed and persist a document.

        Replaces any existing entry for the same id as a whole.

        Args:
            document_id: Identifier for the new entry
            text: Extracted document text
            file_name: Original file name, used as the citation source
            page_count: Number of pages in the source document
            page_starts: Optional character offsets where each page begins

        Returns:
            IndexSummary with page and chunk counts

        Raises:
            EmptyDocument: If the text is empty or whitespace-only
            EmbeddingFailure: If the embedding provider fails
        """
        check_document_id(document_id)

        if not text or not text.strip():
            logger.warning("empty_document_rejected", document_id=document_id)
            raise EmptyDocument()

        chunks = self.chunker.chunk_text(text, document_id, page_starts)
        if not chunks:
            raise EmptyDocument()

        embeddings = await self.embedder.embed([chunk.content for chunk in chunks])

        entry = StoreEntry(
            chunks=[chunk.content for chunk in chunks],
            embeddings=embeddings,
            metadata=[
                ChunkMetadata(
                    source=file_name,
                    chunk_index=chunk.chunk_index,
                    page_number=chunk.page_number,
                    file_name=file_name,
                )
                for chunk in chunks
            ],
        )
        metadata = StoreMetadata(
            file_name=file_name,
            created_at=datetime.now(timezone.utc),
            chunk_count=len(chunks),
            page_count=page_count,
            text_length=len(text),
        )

        async with self._lock(document_id):
            await asyncio.to_thread(self._write_entry, document_id, entry, metadata)
            self._cache[document_id] = entry

        logger.info(
            "vector_store_created",
            document_id=document_id,
            file_name=file_name,
            chunk_count=len(chunks),
            page_count=page_count,
        )

        return IndexSummary(page_count=page_count, chunk_count=len(chunks))

    async def load(self, document_id: str) -> Optional[StoreEntry]:
        """Return the entry for a document, reading it from disk on a cache miss.

        Returns:
            The StoreEntry, or None if no entry is persisted
        """
        check_document_id(document_id)

        entry = self._cache.get(document_id)
        if entry is not None:
            return entry

        async with self._lock(document_id):
            entry = self._cache.get(document_id)
            if entry is not None:
                return entry

            entry = await asyncio.to_thread(self._read_entry, document_id)
            if entry is not None:
                self._cache[document_id] = entry
                logger.info(
                    "vector_store_loaded",
                    document_id=document_id,
                    chunk_count=len(entry),
                )
            return entry

    async def delete_index(self, document_id: str) -> bool:
        """Remove a document's cached and persisted entry.

        Returns:
            True if a persisted entry existed
        """
        check_document_id(document_id)

        async with self._lock(document_id):
            self._cache.pop(document_id, None)
            existed = await asyncio.to_thread(self._remove_entry, document_id)

        logger.info("vector_store_deleted", document_id=document_id, existed=existed)
        return existed

    async def list_indexes(self) -> Set[str]:
        """Enumerate the ids of all persisted entries."""
        return await asyncio.to_thread(self._scan_ids)

    async def get_metadata(self, document_id: str) -> Optional[StoreMetadata]:
        """Read a document's metadata record without touching its vectors."""
        check_document_id(document_id)
        return await asyncio.to_thread(self._read_metadata, document_id)

    async def save_metadata(
        self, document_id: str, metadata: Union[StoreMetadata, Dict[str, Any]]
    ) -> StoreMetadata:
        """Replace a document's metadata record.

        Raises:
            StoreNotFound: If no entry directory exists for the id
            pydantic.ValidationError: If a dict payload is malformed
        """
        check_document_id(document_id)
        if not isinstance(metadata, StoreMetadata):
            metadata = StoreMetadata.model_validate(metadata)

        async with self._lock(document_id):
            if not self._path(document_id).is_dir():
                raise StoreNotFound(document_id)
            await asyncio.to_thread(self._write_metadata, self._path(document_id), metadata)

        logger.info("vector_store_metadata_saved", document_id=document_id)
        return metadata

    # Disk helpers (run in worker threads)

    def _write_entry(
        self, document_id: str, entry: StoreEntry, metadata: StoreMetadata
    ) -> None:
        self.store_dir.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".{document_id}.", dir=self.store_dir))
        try:
            (staging / STORE_FILE).write_text(
                entry.model_dump_json(by_alias=True, exclude_none=True),
                encoding="utf-8",
            )
            self._write_metadata(staging, metadata)

            target = self._path(document_id)
            if target.exists():
                retired = self.store_dir / f".{document_id}.retired-{uuid.uuid4().hex}"
                target.rename(retired)
                staging.rename(target)
                shutil.rmtree(retired, ignore_errors=True)
            else:
                staging.rename(target)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise

    def _write_metadata(self, directory: Path, metadata: StoreMetadata) -> None:
        fd, tmp_name = tempfile.mkstemp(prefix=".metadata.", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(metadata.model_dump_json(by_alias=True, indent=2))
            os.replace(tmp_name, directory / METADATA_FILE)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _read_entry(self, document_id: str) -> Optional[StoreEntry]:
        path = self._path(document_id) / STORE_FILE
        if not path.exists():
            return None

        try:
            return StoreEntry.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.error(
                "vector_store_load_failed",
                document_id=document_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    def _read_metadata(self, document_id: str) -> Optional[StoreMetadata]:
        path = self._path(document_id) / METADATA_FILE
        if not path.exists():
            return None

        try:
            return StoreMetadata.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.error(
                "vector_store_metadata_load_failed",
                document_id=document_id,
                error=str(e),
            )
            return None

    def _remove_entry(self, document_id: str) -> bool:
        target = self._path(document_id)
        if not target.exists():
            return False

        retired = self.store_dir / f".{document_id}.retired-{uuid.uuid4().hex}"
        target.rename(retired)
        shutil.rmtree(retired)
        return True

    def _scan_ids(self) -> Set[str]:
        if not self.store_dir.exists():
            return set()

        return {
            path.name
            for path in self.store_dir.iterdir()
            if path.is_dir()
            and not path.name.startswith(".")
            and (path / STORE_FILE).exists()
        }
