"""Confidence scoring for generated answers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from rfprag.config import Settings
from rfprag.models import RagSearchResult


@dataclass(frozen=True)
class ConfidenceWeights:
    """Weights and bounds of the confidence blend.

    confidence = top * top_weight + mean * average_weight
                 + min(count, count_cap) * count_weight, clamped to [floor, ceiling]
    """

    top_weight: float = 0.5
    average_weight: float = 0.3
    count_weight: float = 0.04
    count_cap: int = 5
    floor: float = 0.1
    ceiling: float = 0.95

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConfidenceWeights":
        return cls(
            top_weight=settings.confidence_top_weight,
            average_weight=settings.confidence_average_weight,
            count_weight=settings.confidence_count_weight,
            count_cap=settings.confidence_count_cap,
            floor=settings.confidence_floor,
            ceiling=settings.confidence_ceiling,
        )


def score_confidence(passages: Sequence[RagSearchResult], weights: ConfidenceWeights | None = None) -> float:
    weights = weights or ConfidenceWeights()
    if not passages:
        return weights.floor
    scores = [passage.similarity_score for passage in passages]
    top = max(scores)
    average = sum(scores) / len(scores)
    count = min(len(scores), weights.count_cap)
    raw = top * weights.top_weight + average * weights.average_weight + count * weights.count_weight
    return max(weights.floor, min(weights.ceiling, raw))
