"""Retrieval components."""

from .service import RetrievalConfig, Retriever, SimilarityRetriever, cosine_similarity

__all__ = ["RetrievalConfig", "Retriever", "SimilarityRetriever", "cosine_similarity"]
