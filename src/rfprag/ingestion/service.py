"""Knowledge base ingestion: extract, chunk and embed corpus documents."""

from __future__ import annotations

import time
from typing import Iterable, Sequence

import numpy as np

from rfprag.embeddings import EmbeddingBackend
from rfprag.errors import EmbeddingFailureError, NoTextExtractedError
from rfprag.ingestion.chunker import TextChunker
from rfprag.ingestion.extraction import TextExtractor
from rfprag.metrics.observability import PipelineMetrics, get_logger
from rfprag.models import KnowledgebaseItem, TextChunk, Vector


class KnowledgebaseIngestor:
    """Turn an uploaded reference document into a :class:`KnowledgebaseItem`."""

    _logger = get_logger("ingestion")

    def __init__(self, extractor: TextExtractor, embedder: EmbeddingBackend, chunker: TextChunker | None = None) -> None:
        self._extractor = extractor
        self._embedder = embedder
        self._chunker = chunker or TextChunker()

    def ingest(self, data: bytes, *, file_name: str) -> KnowledgebaseItem:
        text = self._extractor.extract(data, file_name=file_name)
        return self.ingest_text(text, file_name=file_name)

    def ingest_text(self, text: str, *, file_name: str) -> KnowledgebaseItem:
        if not text or not text.strip():
            raise NoTextExtractedError(f"No text could be extracted from {file_name}")
        start = time.perf_counter()
        chunks = self._chunker.split(text)
        vectors = self._embed([chunk.text for chunk in chunks])
        embedded = tuple(
            TextChunk(
                id=chunk.id,
                text=chunk.text,
                start_index=chunk.start_index,
                end_index=chunk.end_index,
                embedding=vector,
            )
            for chunk, vector in zip(chunks, vectors)
        )
        item = KnowledgebaseItem(
            file_name=file_name,
            original_text=text,
            chunks=embedded,
            original_text_embedding=document_vector(vector for vector in vectors if vector),
        )
        duration = time.perf_counter() - start
        PipelineMetrics.observe_stage("ingest", duration)
        self._logger.info(
            "ingestion.complete",
            file_name=file_name,
            chunk_count=len(embedded),
            duration_seconds=duration,
        )
        return item

    def _embed(self, texts: Sequence[str]) -> list[Vector]:
        vectors = list(self._embedder.embed_batch(texts))
        if len(vectors) != len(texts):
            raise EmbeddingFailureError(f"Embedding backend returned {len(vectors)} vectors for {len(texts)} chunks")
        isolated = bool(getattr(self._embedder, "isolates_failures", False))
        embedded: list[Vector] = []
        for text, vector in zip(texts, vectors):
            if vector is None:
                if not isolated:
                    raise EmbeddingFailureError(f"No embedding returned for chunk: {text[:80]}")
                self._logger.warning("ingestion.embedding_degraded", chunk=text[:80])
                vector = ()
            embedded.append(tuple(vector))
        return embedded


def document_vector(vectors: Iterable[Vector]) -> Vector:
    """Unit-length mean of the chunk vectors; ``()`` when there are none."""

    stacked = [np.asarray(vector, dtype=np.float64) for vector in vectors]
    if not stacked:
        return ()
    mean = np.mean(np.vstack(stacked), axis=0)
    norm = float(np.linalg.norm(mean))
    if norm == 0.0:
        return tuple(float(value) for value in mean)
    return tuple(float(value) for value in mean / norm)
