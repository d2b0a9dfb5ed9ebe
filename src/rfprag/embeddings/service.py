"""Embedding backends for RfpRAG."""

from __future__ import annotations

import hashlib
import math
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

import httpx
from langchain_core.embeddings import Embeddings as LangChainEmbeddings

from rfprag.config import Settings
from rfprag.errors import EmbeddingFailureError
from rfprag.metrics.observability import get_logger
from rfprag.models import Vector

LOGGER = get_logger("embeddings")


@dataclass(frozen=True)
class EmbeddingConfig:
    """Configuration for embedding backends."""

    model: str = "text-embedding-3-small"
    dim: int = 384
    device: str | None = None
    normalize: bool = True
    cache_folder: str | None = None
    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    timeout_seconds: float = 30.0


class EmbeddingBackend(Protocol):
    """Protocol describing embedding behaviour.

    ``embed_batch`` returns one entry per input text, in input order. Only a
    backend that sets ``isolates_failures`` may return ``None`` for an item
    it failed to embed; every other failure is raised for the whole batch.
    """

    isolates_failures: bool

    def embed(self, text: str) -> Vector:
        """Return the embedding vector for ``text``; empty text yields ``()``."""

    def embed_batch(self, texts: Sequence[str]) -> Sequence[Optional[Vector]]:
        """Return embedding vectors for ``texts`` in the same order."""


def _normalize(vector: Sequence[float]) -> Vector:
    norm = math.sqrt(sum(value * value for value in vector)) or 1.0
    return tuple(value / norm for value in vector)


class _BatchingMixin:
    """Shared ``embed``/``embed_batch`` plumbing that skips blank texts."""

    isolates_failures = False
    _config: EmbeddingConfig

    @property
    def config(self) -> EmbeddingConfig:
        return self._config

    def _embed_many(self, texts: Sequence[str]) -> List[Vector]:  # pragma: no cover - overridden
        raise NotImplementedError

    def embed(self, text: str) -> Vector:
        if not text or not text.strip():
            return ()
        return self._embed_many([text])[0]

    def embed_batch(self, texts: Sequence[str]) -> Sequence[Optional[Vector]]:
        results: List[Optional[Vector]] = [() for _ in texts]
        pending = [index for index, text in enumerate(texts) if text and text.strip()]
        if not pending:
            return results
        vectors = self._embed_many([texts[index] for index in pending])
        if len(vectors) != len(pending):
            LOGGER.error("embedding.count_mismatch", expected=len(pending), actual=len(vectors))
            raise EmbeddingFailureError(
                f"Embedding backend returned {len(vectors)} vectors for {len(pending)} texts",
            )
        for index, vector in zip(pending, vectors):
            results[index] = vector
        return results


class HashEmbeddingBackend(_BatchingMixin):
    """Deterministic lightweight embedding fallback used for testing."""

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self._config = config or EmbeddingConfig()

    def _hash_to_vector(self, text: str) -> Vector:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        repeat = (self._config.dim + len(digest) - 1) // len(digest)
        raw = (digest * repeat)[: self._config.dim]
        vector = [byte / 255.0 for byte in raw]
        if self._config.normalize:
            return _normalize(vector)
        return tuple(vector)

    def _embed_many(self, texts: Sequence[str]) -> List[Vector]:
        return [self._hash_to_vector(text) for text in texts]


class HuggingFaceEmbeddingBackend(_BatchingMixin):
    """Sentence-embedding backend via LangChain's HuggingFace integration."""

    def __init__(self, config: EmbeddingConfig | None = None, client: LangChainEmbeddings | None = None) -> None:
        self._config = config or EmbeddingConfig(model="BAAI/bge-small-en-v1.5")
        self._client = client

    def _ensure_client(self) -> LangChainEmbeddings:
        if self._client is not None:
            return self._client
        from langchain_community.embeddings import HuggingFaceEmbeddings

        model_kwargs = {"device": self._config.device} if self._config.device else {}
        if self._config.cache_folder:
            model_kwargs["cache_dir"] = self._config.cache_folder
        try:
            self._client = HuggingFaceEmbeddings(
                model_name=self._config.model,
                model_kwargs=model_kwargs,
                encode_kwargs={"normalize_embeddings": self._config.normalize},
            )
        except Exception as exc:
            raise EmbeddingFailureError(f"Failed to load embedding model {self._config.model}: {exc}") from exc
        LOGGER.info("embedding.model_loaded", model=self._config.model)
        return self._client

    def _embed_many(self, texts: Sequence[str]) -> List[Vector]:
        client = self._ensure_client()
        try:
            vectors = client.embed_documents(list(texts))
        except Exception as exc:
            raise EmbeddingFailureError(f"Failed to generate embeddings: {exc}") from exc
        if vectors and len(vectors[0]) != self._config.dim:
            LOGGER.warning("embedding.dim_mismatch", configured=self._config.dim, actual=len(vectors[0]))
        if self._config.normalize:
            return [_normalize(vector) for vector in vectors]
        return [tuple(vector) for vector in vectors]


class OpenAIEmbeddingBackend(_BatchingMixin):
    """Embedding backend for OpenAI-compatible ``/embeddings`` endpoints.

    A batch is sent as a single request; results are reordered by the
    ``index`` field of the response so output order matches input order.
    """

    def __init__(self, config: EmbeddingConfig | None = None, client: httpx.Client | None = None) -> None:
        self._config = config or EmbeddingConfig()
        headers = {"Authorization": f"Bearer {self._config.api_key}"} if self._config.api_key else None
        self._client = client or httpx.Client(
            base_url=self._config.base_url,
            timeout=self._config.timeout_seconds,
            headers=headers,
        )

    def _embed_many(self, texts: Sequence[str]) -> List[Vector]:
        payload = {"model": self._config.model, "input": list(texts)}
        try:
            response = self._client.post("/embeddings", json=payload)
            response.raise_for_status()
            data = response.json()["data"]
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            raise EmbeddingFailureError(f"Failed to generate embeddings: {exc}") from exc
        ordered = sorted(data, key=lambda item: int(item.get("index", 0)))
        return [tuple(float(value) for value in item["embedding"]) for item in ordered]

    def close(self) -> None:
        self._client.close()


DEFAULT_EMBEDDING_MODELS = {
    "hash": "sha256",
    "huggingface": "BAAI/bge-small-en-v1.5",
    "openai": "text-embedding-3-small",
}


def build_embedding_backend(settings: Settings) -> EmbeddingBackend:
    """Instantiate the embedding backend selected by ``settings.embedding_provider``.

    ``settings.embedding_model`` overrides the provider's default model.
    """

    config = EmbeddingConfig(
        model=settings.embedding_model or DEFAULT_EMBEDDING_MODELS[settings.embedding_provider],
        dim=settings.embedding_dim,
        device=settings.embedding_device,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout_seconds=settings.request_timeout_seconds,
    )
    if settings.embedding_provider == "openai":
        return OpenAIEmbeddingBackend(config)
    if settings.embedding_provider == "huggingface":
        return HuggingFaceEmbeddingBackend(config)
    LOGGER.info("embedding.hash_mode", dim=config.dim)
    return HashEmbeddingBackend(config)
