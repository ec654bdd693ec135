"""Pytest configuration and shared fixtures."""
import os
import string
import tempfile

# Keep config's data directory out of the source tree
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="docqa-test-"))

import pytest

from docqa.rag.chunker import TextChunker
from docqa.rag.embeddings import EmbeddingGateway
from docqa.rag.retriever import Retriever, make_corpus
from docqa.rag.store import VectorStore
from docqa.rag.synthesizer import AnswerSynthesizer
from docqa.rag.topics import TopicSuggester


def letter_vector(text: str) -> list:
    """Deterministic 26-dim embedding: lowercase letter counts."""
    lowered = text.lower()
    return [float(lowered.count(ch)) for ch in string.ascii_lowercase]


class FakeLLMClient:
    """Stands in for LLMClient; replies are scripted per test."""

    def __init__(self):
        self.replies = []
        self.chat_calls = []
        self.embedding_calls = []
        self.embedding_error = None

    async def embeddings(self, inputs, model=None):
        self.embedding_calls.append(list(inputs))
        if self.embedding_error is not None:
            raise self.embedding_error
        return {
            "data": [
                {"index": i, "embedding": letter_vector(text)}
                for i, text in enumerate(inputs)
            ]
        }

    async def invoke(self, messages, model=None, temperature=None):
        self.chat_calls.append(
            {"messages": messages, "model": model, "temperature": temperature}
        )
        reply = self.replies.pop(0) if self.replies else "No reply scripted."
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def list_models(self):
        return ["gpt-4o-mini"]


@pytest.fixture
def fake_client():
    return FakeLLMClient()


@pytest.fixture
def store_dir(tmp_path):
    return tmp_path / "vector_stores"


@pytest.fixture
def make_store(store_dir, fake_client):
    """Build a VectorStore on the shared directory with a given chunk size."""

    def _make(chunk_size: int = 100, chunk_overlap: int = 20) -> VectorStore:
        return VectorStore(
            store_dir=store_dir,
            chunker=TextChunker(chunk_size=chunk_size, chunk_overlap=chunk_overlap),
            embedder=EmbeddingGateway(client=fake_client, batch_size=4),
        )

    return _make


@pytest.fixture
def store(make_store):
    return make_store()


@pytest.fixture
def general_corpus():
    return make_corpus([("example", "General knowledge passage about nothing in particular.")])


@pytest.fixture
def retriever(store, general_corpus):
    return Retriever(store, default_corpus=general_corpus, top_k=4)


@pytest.fixture
def synthesizer(retriever, fake_client):
    return AnswerSynthesizer(retriever, client=fake_client)


@pytest.fixture
def topic_suggester(retriever, fake_client):
    return TopicSuggester(retriever, client=fake_client)
