"""Cosine-similarity retrieval over the in-memory knowledge base."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Protocol, Sequence

import numpy as np

from rfprag.errors import DimensionMismatchError
from rfprag.metrics.observability import PipelineMetrics, get_logger
from rfprag.models import Knowledgebase, RagSearchResult


@dataclass(frozen=True)
class RetrievalConfig:
    """Configuration for retrieval."""

    top_k: int = 5
    min_similarity: float = 0.3


class Retriever(Protocol):
    """Retrieve relevant chunks for a query vector."""

    def retrieve(
        self,
        query_vector: Sequence[float],
        knowledgebase: Knowledgebase,
        *,
        top_k: int | None = None,
        min_similarity: float | None = None,
    ) -> Sequence[RagSearchResult]:
        """Return at most ``top_k`` results scoring at least ``min_similarity``, best first."""


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between ``a`` and ``b``; 0.0 if either has zero norm."""

    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))
    left = np.asarray(a, dtype=np.float64)
    right = np.asarray(b, dtype=np.float64)
    denominator = float(np.linalg.norm(left) * np.linalg.norm(right))
    if denominator == 0.0:
        return 0.0
    return float(np.dot(left, right) / denominator)


class SimilarityRetriever:
    """Brute-force cosine retriever over every chunk of every knowledge base item."""

    def __init__(self, config: RetrievalConfig | None = None) -> None:
        self._config = config or RetrievalConfig()
        self._logger = get_logger("retrieval")

    @property
    def config(self) -> RetrievalConfig:
        return self._config

    def retrieve(
        self,
        query_vector: Sequence[float],
        knowledgebase: Knowledgebase,
        *,
        top_k: int | None = None,
        min_similarity: float | None = None,
    ) -> List[RagSearchResult]:
        limit = self._config.top_k if top_k is None else top_k
        floor = self._config.min_similarity if min_similarity is None else min_similarity
        if limit <= 0 or not query_vector or knowledgebase.is_empty:
            return []

        hits: List[RagSearchResult] = []
        for item in knowledgebase.items:
            for chunk in item.chunks:
                if not chunk.embedding:
                    continue
                score = cosine_similarity(query_vector, chunk.embedding)
                if score < floor:
                    continue
                hits.append(
                    RagSearchResult(
                        knowledgebase_item_id=item.id,
                        text_chunk_id=chunk.id,
                        text=chunk.text,
                        similarity_score=score,
                        file_name=item.file_name,
                    ),
                )
        # sorted() is stable, so equal scores keep corpus order
        ranked = sorted(hits, key=lambda hit: hit.similarity_score, reverse=True)[:limit]
        PipelineMetrics.observe_retrieval(len(ranked), (hit.similarity_score for hit in ranked))
        self._logger.info(
            "retrieval.complete",
            candidate_count=len(hits),
            chunk_count=len(ranked),
            top_k=limit,
            min_similarity=floor,
        )
        return ranked
