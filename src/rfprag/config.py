"""Runtime configuration for the RfpRAG services."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="rfprag_", env_file=".env", case_sensitive=False)

    environment: Literal["dev", "test", "prod"] = "dev"
    data_dir: Path = Path("./data")
    knowledgebase_path: Path = Path("./data/knowledgebase.json")

    # Chunking
    chunk_size: int = 250

    # Retrieval thresholds
    retrieval_top_k: int = 5
    retrieval_min_similarity: float = 0.3

    # Confidence blend: top * w_top + average * w_avg + min(count, cap) * w_count
    confidence_top_weight: float = 0.5
    confidence_average_weight: float = 0.3
    confidence_count_weight: float = 0.04
    confidence_count_cap: int = 5
    confidence_floor: float = 0.1
    confidence_ceiling: float = 0.95

    fallback_answer: str = "No relevant information found in the knowledgebase to answer this question."
    fallback_confidence: float = 0.1
    max_context_passages: int = 5

    # Providers
    embedding_provider: Literal["hash", "huggingface", "openai"] = "hash"
    # None picks the default model of the selected provider
    embedding_model: str | None = None
    embedding_dim: int = 384
    embedding_device: str | None = None

    answer_provider: Literal["template", "transformers", "openai"] = "template"
    generator_model: str | None = None
    generator_max_new_tokens: int = 512
    generator_temperature: float = 0.3
    generator_device: str | None = None

    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    request_timeout_seconds: float = 30.0

    # Upload safety
    allowed_extensions: tuple[str, ...] | str = (".pdf", ".docx", ".txt", ".md")
    max_upload_size_mb: int = 50

    # Finished runs kept in memory by the API for editing and export
    max_cached_results: int = 100

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    @property
    def allowed_extensions_tuple(self) -> tuple[str, ...]:
        value = self.allowed_extensions
        if isinstance(value, tuple):
            return value
        if isinstance(value, str):
            parts = [p.strip() for p in value.split(",") if p.strip()]
            return tuple(parts) if parts else (".pdf",)
        return (".pdf",)


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()
