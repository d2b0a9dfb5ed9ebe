"""Observability helpers for RfpRAG."""

from __future__ import annotations

import logging
import time
from contextvars import ContextVar
from typing import Iterable

import structlog
from prometheus_client import Counter, Gauge, Histogram

_logger_configured = False
_correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")


def configure_logging(level: int = logging.INFO) -> None:
    global _logger_configured  # noqa: PLW0603 - module-level guard
    if _logger_configured:
        return
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger_configured = True


def bind_correlation_id(correlation_id: str) -> None:
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    structlog.contextvars.clear_contextvars()
    _correlation_id_var.set("-")


def get_correlation_id() -> str:
    return _correlation_id_var.get()


def get_logger(name: str = "rfprag") -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


def _clamp_score(score: float) -> float:
    if score < 0.0:
        return 0.0
    if score > 1.0:
        return 1.0
    return score


class PipelineMetrics:
    """Prometheus metrics for pipeline stages."""

    extraction_latency = Histogram(
        "rfprag_extraction_duration_seconds",
        "Time spent extracting text from uploaded documents.",
        buckets=(0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
    )
    stage_latency = Histogram(
        "rfprag_stage_duration_seconds",
        "Time spent in each pipeline stage.",
        ["stage"],
        buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 60.0),
    )
    detected_questions = Histogram(
        "rfprag_detected_question_count",
        "Questions detected per RFP.",
        buckets=(0, 1, 5, 10, 25, 50, 100),
    )
    retrieved_chunk_count = Histogram(
        "rfprag_retrieved_chunk_count",
        "Number of chunks returned by retrieval.",
        buckets=(0, 1, 2, 3, 5, 8, 13),
    )
    similarity_score = Histogram(
        "rfprag_similarity_score",
        "Cosine similarity of retrieved chunks.",
        buckets=(0.0, 0.25, 0.5, 0.75, 1.0),
    )
    answer_confidence = Histogram(
        "rfprag_answer_confidence",
        "Confidence attached to generated answers.",
        buckets=(0.1, 0.25, 0.5, 0.75, 0.95),
    )
    generation_latency = Histogram(
        "rfprag_generation_duration_seconds",
        "Time spent generating answers.",
        buckets=(0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 15.0),
    )
    runs = Counter(
        "rfprag_runs_total",
        "Finished RFP processing runs by terminal status.",
        ["status"],
    )
    knowledgebase_items = Gauge(
        "rfprag_knowledgebase_item_count",
        "Number of documents in the knowledge base.",
    )

    @classmethod
    def observe_extraction(cls, duration_seconds: float) -> None:
        cls.extraction_latency.observe(duration_seconds)

    @classmethod
    def observe_stage(cls, stage: str, duration_seconds: float) -> None:
        cls.stage_latency.labels(stage=stage).observe(duration_seconds)

    @classmethod
    def observe_detection(cls, question_count: int) -> None:
        cls.detected_questions.observe(question_count)

    @classmethod
    def observe_retrieval(cls, chunk_count: int, scores: Iterable[float]) -> None:
        cls.retrieved_chunk_count.observe(chunk_count)
        for score in scores:
            cls.similarity_score.observe(_clamp_score(score))

    @classmethod
    def observe_generation(cls, duration_seconds: float, confidence: float) -> None:
        cls.generation_latency.observe(duration_seconds)
        cls.answer_confidence.observe(_clamp_score(confidence))

    @classmethod
    def observe_run(cls, status: str) -> None:
        cls.runs.labels(status=status).inc()


class TimedSection:
    """Context manager capturing elapsed time for metrics."""

    def __init__(self, callback) -> None:
        self._callback = callback
        self._start = 0.0

    def __enter__(self) -> "TimedSection":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        duration = time.perf_counter() - self._start
        self._callback(duration)


__all__ = [
    "PipelineMetrics",
    "TimedSection",
    "bind_correlation_id",
    "clear_correlation_id",
    "configure_logging",
    "get_correlation_id",
    "get_logger",
]
