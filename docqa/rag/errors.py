"""Failure types raised by the RAG pipeline."""
from typing import Optional


class RAGError(Exception):
    """Base class for request-level pipeline failures."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class EmptyDocument(RAGError):
    """Extracted text is empty or whitespace-only."""

    def __init__(self, message: str = "Document contains no extractable text"):
        super().__init__(message)


class EmbeddingFailure(RAGError):
    """The embedding provider call failed or returned an unusable payload."""


class StoreNotFound(RAGError):
    """No persisted vector store exists for the requested document."""

    def __init__(self, document_id: str):
        super().__init__(f"Vector store {document_id} not found")
        self.document_id = document_id


class SynthesisFailure(RAGError):
    """The language-model call itself failed."""
