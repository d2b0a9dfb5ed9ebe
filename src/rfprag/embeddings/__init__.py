"""Embedding services."""

from .service import (
    EmbeddingBackend,
    EmbeddingConfig,
    HashEmbeddingBackend,
    HuggingFaceEmbeddingBackend,
    OpenAIEmbeddingBackend,
    build_embedding_backend,
)

__all__ = [
    "EmbeddingBackend",
    "EmbeddingConfig",
    "HashEmbeddingBackend",
    "HuggingFaceEmbeddingBackend",
    "OpenAIEmbeddingBackend",
    "build_embedding_backend",
]
