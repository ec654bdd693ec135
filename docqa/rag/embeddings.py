"""Embedding gateway over the provider client.

Turns texts into fixed-dimension vectors, preserving input order. Any
transport, authentication or payload problem surfaces as EmbeddingFailure;
no retries are attempted here.
"""
from typing import List, Optional
import httpx
import structlog

from docqa import config
from docqa.llm_client import LLMClient, embedding_client
from docqa.rag.errors import EmbeddingFailure

logger = structlog.get_logger()


class EmbeddingGateway:
    """Batch and single-text embedding with shape checks."""

    def __init__(
        self,
        client: Optional[LLMClient] = None,
        model: str = None,
        batch_size: int = None,
    ):
        self.client = client or embedding_client
        self.model = model or config.EMBEDDING_MODEL
        self.batch_size = batch_size or config.EMBEDDING_BATCH_SIZE
        self.dimension: Optional[int] = None

    async def embed(self, texts: List[str]) -> List[List[float]]:
        """Embed a batch of texts.

        Args:
            texts: Ordered texts to embed

        Returns:
            One vector per text, in input order

        Raises:
            EmbeddingFailure: On provider errors or malformed responses
        """
        if not texts:
            return []

        vectors: List[List[float]] = []
        for i in range(0, len(texts), self.batch_size):
            batch = texts[i : i + self.batch_size]
            vectors.extend(await self._embed_batch(batch))

            logger.debug(
                "embeddings_batch_generated",
                batch_size=len(batch),
                total_so_far=len(vectors),
            )

        return vectors

    async def embed_query(self, text: str) -> List[float]:
        """Embed a single query string."""
        vectors = await self.embed([text])
        return vectors[0]

    async def _embed_batch(self, batch: List[str]) -> List[List[float]]:
        try:
            response = await self.client.embeddings(batch, model=self.model)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "embedding_generation_failed",
                model=self.model,
                batch_size=len(batch),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise EmbeddingFailure(f"Failed to generate embeddings: {e}", cause=e) from e

        try:
            items = sorted(response["data"], key=lambda item: item.get("index", 0))
            vectors = [[float(x) for x in item["embedding"]] for item in items]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise EmbeddingFailure(f"Malformed embedding response: {e}", cause=e) from e

        if len(vectors) != len(batch):
            raise EmbeddingFailure(
                f"Embedding count mismatch: sent {len(batch)} texts, "
                f"received {len(vectors)} vectors"
            )

        for vector in vectors:
            if not vector:
                raise EmbeddingFailure("Empty embedding returned from provider")
            if self.dimension is None:
                self.dimension = len(vector)
                logger.info("embedding_dimension_detected", dimension=self.dimension)
            elif len(vector) != self.dimension:
                raise EmbeddingFailure(
                    f"Embedding dimension mismatch: expected {self.dimension}, "
                    f"got {len(vector)}"
                )

        return vectors
