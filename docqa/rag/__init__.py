"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Document chunking with overlap
- Embedding generation
- Per-document vector storage with an in-memory cache
- Cosine similarity retrieval
- Answer synthesis with citations and topic suggestions
"""
