"""Nearest-neighbour search over one document's vectors.

The default search is an exhaustive cosine scan, which is fine for the
tens to low thousands of chunks a single document produces. The FAISS
variant is a drop-in replacement with the same ordering rules.
"""
from typing import List, Sequence, Tuple

import faiss
import numpy as np
import structlog

from docqa import config

logger = structlog.get_logger()

EPSILON = 1e-10


def _check_dimensions(query: np.ndarray, matrix: np.ndarray) -> None:
    if matrix.ndim != 2 or query.ndim != 1 or matrix.shape[1] != query.shape[0]:
        raise ValueError(
            f"Query dimension mismatch: expected {matrix.shape[-1]}, "
            f"got {query.shape[-1]}"
        )


def _rank(scores: np.ndarray, top_k: int) -> List[Tuple[int, float]]:
    """Order by score descending, ties by chunk index ascending."""
    order = np.lexsort((np.arange(len(scores)), -scores))
    return [(int(idx), float(scores[idx])) for idx in order[:top_k]]


def cosine_similarities(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of one query against every row of matrix.

    Uses ``dot(a, b) / (|a| * |b| + 1e-10)`` so all-zero vectors score 0.
    """
    query = np.asarray(query, dtype=np.float64)
    matrix = np.asarray(matrix, dtype=np.float64)
    _check_dimensions(query, matrix)

    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    return (matrix @ query) / (norms + EPSILON)


class ExhaustiveCosineSearch:
    """Scores every stored vector against the query."""

    name = "numpy"

    def search(
        self, query: Sequence[float], matrix: np.ndarray, top_k: int
    ) -> List[Tuple[int, float]]:
        """Return up to top_k (chunk_index, score) pairs, best first."""
        if len(matrix) == 0 or top_k <= 0:
            return []
        return _rank(cosine_similarities(query, matrix), top_k)


class FaissCosineSearch:
    """Inner-product search over L2-normalised vectors with faiss."""

    name = "faiss"

    def search(
        self, query: Sequence[float], matrix: np.ndarray, top_k: int
    ) -> List[Tuple[int, float]]:
        if len(matrix) == 0 or top_k <= 0:
            return []

        vectors = np.asarray(matrix, dtype=np.float32)
        query_vector = np.asarray(query, dtype=np.float32)
        _check_dimensions(query_vector, vectors)

        vectors = vectors / (np.linalg.norm(vectors, axis=1, keepdims=True) + EPSILON)
        query_vector = query_vector / (np.linalg.norm(query_vector) + EPSILON)

        index = faiss.IndexFlatIP(vectors.shape[1])
        index.add(np.ascontiguousarray(vectors))

        # Score everything so ties at the top_k boundary follow chunk order
        distances, indices = index.search(
            np.ascontiguousarray(query_vector.reshape(1, -1)), len(vectors)
        )

        scores = np.empty(len(vectors), dtype=np.float64)
        scores[indices[0]] = distances[0]
        return _rank(scores, top_k)


def get_search(backend: str = None):
    """Build the search implementation named by config.SEARCH_BACKEND."""
    backend = (backend or config.SEARCH_BACKEND).lower()
    if backend == "faiss":
        return FaissCosineSearch()
    if backend != "numpy":
        logger.warning("unknown_search_backend", backend=backend)
    return ExhaustiveCosineSearch()
