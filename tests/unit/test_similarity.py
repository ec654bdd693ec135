"""Tests for cosine similarity search."""
import math

import numpy as np
import pytest

from docqa.rag.similarity import (
    ExhaustiveCosineSearch,
    FaissCosineSearch,
    cosine_similarities,
    get_search,
)


def test_cosine_similarity_values():
    matrix = np.array([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
    scores = cosine_similarities([1.0, 0.0], matrix)

    assert scores[0] == pytest.approx(1.0)
    assert scores[1] == pytest.approx(0.0)
    assert scores[2] == pytest.approx(1 / math.sqrt(2))


def test_zero_vector_scores_zero():
    scores = cosine_similarities([0.0, 0.0], np.array([[1.0, 2.0], [0.0, 0.0]]))
    assert not np.isnan(scores).any()
    assert scores.tolist() == [0.0, 0.0]


@pytest.mark.parametrize("search", [ExhaustiveCosineSearch(), FaissCosineSearch()])
def test_search_orders_by_score_then_index(search):
    matrix = np.array([
        [0.0, 1.0],
        [1.0, 0.0],
        [0.0, 1.0],
        [1.0, 0.0],
        [1.0, 1.0],
    ])

    ranked = search.search([1.0, 0.0], matrix, top_k=5)

    assert [idx for idx, _ in ranked] == [1, 3, 4, 0, 2]
    scores = [score for _, score in ranked]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.parametrize("search", [ExhaustiveCosineSearch(), FaissCosineSearch()])
def test_search_caps_at_top_k_and_available(search):
    matrix = np.eye(3)
    assert len(search.search([1.0, 0.0, 0.0], matrix, top_k=2)) == 2
    assert len(search.search([1.0, 0.0, 0.0], matrix, top_k=10)) == 3


@pytest.mark.parametrize("search", [ExhaustiveCosineSearch(), FaissCosineSearch()])
def test_dimension_mismatch_rejected(search):
    with pytest.raises(ValueError):
        search.search([1.0, 0.0], np.eye(3), top_k=1)


def test_get_search_by_name():
    assert isinstance(get_search("numpy"), ExhaustiveCosineSearch)
    assert isinstance(get_search("faiss"), FaissCosineSearch)
    assert isinstance(get_search("unknown"), ExhaustiveCosineSearch)
