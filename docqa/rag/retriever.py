"""Retriever for semantic search over an indexed document.

Handles:
- Query embedding generation
- Cosine similarity ranking over the document's stored vectors
- A fixed general-chat corpus used when no document is in play
- Context formatting for the LLM prompt
"""
from typing import Iterable, List, Optional
from dataclasses import dataclass
import structlog

from docqa import config
from docqa.rag.embeddings import EmbeddingGateway
from docqa.rag.errors import StoreNotFound
from docqa.rag.similarity import get_search
from docqa.rag.store import ChunkMetadata, VectorStore

logger = structlog.get_logger()

CONTEXT_DELIMITER = "\n\n---\n\n"


@dataclass
class RetrievalResult:
    """A single retrieved chunk with metadata."""

    content: str
    metadata: ChunkMetadata
    score: float

    @property
    def source(self) -> str:
        return self.metadata.source

    @property
    def chunk_index(self) -> int:
        return self.metadata.chunk_index


def make_corpus(passages: Iterable[tuple]) -> List[RetrievalResult]:
    """Build a general-chat corpus from (source, text) pairs."""
    return [
        RetrievalResult(
            content=text,
            metadata=ChunkMetadata(source=source, chunk_index=idx, file_name=source),
            score=0.0,
        )
        for idx, (source, text) in enumerate(passages)
    ]


GENERAL_CORPUS = make_corpus(
    [
        (
            "example",
            "Your document content goes here. This is sample data for the chatbot.",
        ),
        (
            "langchain",
            "LangChain is a framework for developing applications powered by "
            "language models.",
        ),
    ]
)


class Retriever:
    """Semantic retriever for RAG pipeline."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedder: Optional[EmbeddingGateway] = None,
        default_corpus: Iterable[RetrievalResult] = (),
        top_k: int = None,
        search=None,
    ):
        """Initialize the retriever.

        Args:
            vector_store: Store holding the indexed documents
            embedder: Gateway for query embeddings (default: the store's)
            default_corpus: Passages served in general-chat mode
            top_k: Number of results to retrieve (default from config)
            search: Similarity search implementation (default from config)
        """
        self.vector_store = vector_store
        self.embedder = embedder or vector_store.embedder
        self.default_corpus = list(default_corpus)
        self.top_k = top_k or config.RETRIEVAL_TOP_K
        self.search = search or get_search()

        logger.info(
            "retriever_initialized",
            top_k=self.top_k,
            search_backend=self.search.name,
            default_corpus_size=len(self.default_corpus),
        )

    async def retrieve(
        self,
        document_id: str,
        query: str,
        top_k: Optional[int] = None,
    ) -> List[RetrievalResult]:
        """Retrieve the chunks of a document most similar to a query.

        Args:
            document_id: Indexed document to search
            query: User query text
            top_k: Number of results to return (overrides default)

        Returns:
            List of RetrievalResult objects, best first; ties keep chunk order

        Raises:
            StoreNotFound: If the document has no persisted entry
            EmbeddingFailure: If the query cannot be embedded
        """
        top_k = top_k or self.top_k

        entry = await self.vector_store.load(document_id)
        if entry is None:
            logger.warning("retrieval_store_not_found", document_id=document_id)
            raise StoreNotFound(document_id)

        logger.info(
            "retrieval_started",
            document_id=document_id,
            query_length=len(query),
            top_k=top_k,
        )

        query_embedding = await self.embedder.embed_query(query)
        ranked = self.search.search(query_embedding, entry.vector_matrix(), top_k)

        results = [
            RetrievalResult(
                content=entry.chunks[idx],
                metadata=entry.metadata[idx],
                score=score,
            )
            for idx, score in ranked
        ]

        logger.info(
            "retrieval_completed",
            document_id=document_id,
            results_returned=len(results),
            top_score=results[0].score if results else None,
        )

        return results

    def general_results(self, top_k: Optional[int] = None) -> List[RetrievalResult]:
        """Passages from the general-chat corpus, in corpus order."""
        return self.default_corpus[: top_k or self.top_k]


def format_context(results: List[RetrievalResult]) -> str:
    """Label each retrieved chunk with its source and join them for a prompt."""
    return CONTEXT_DELIMITER.join(
        f"[Source {i}: {result.source}, chunk {result.chunk_index}]\n{result.content.strip()}"
        for i, result in enumerate(results, 1)
    )
