"""Rule tables driving question detection."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Tuple

QUESTION_STARTERS: Tuple[str, ...] = (
    "what", "how", "when", "where", "why", "who", "which", "whose", "whom",
    "can", "could", "would", "should", "will", "shall", "may", "might",
    "do", "does", "did", "have", "has", "had", "are", "is", "was", "were",
    "please describe", "please explain", "please provide", "please list",
)

IMPERATIVE_VERBS: Tuple[str, ...] = (
    "describe", "explain", "provide", "list", "outline", "detail", "specify", "identify",
)

RFP_KEYWORDS: Tuple[str, ...] = (
    "requirement", "specification", "proposal", "solution", "approach",
    "methodology", "timeline", "cost", "pricing", "budget", "experience",
    "qualification", "capability", "deliverable", "scope", "objective", "goal",
)

# Leading imperative verb -> interrogative prefix for the lowercased remainder.
REQUIREMENT_TRANSFORMS: Mapping[str, str] = {
    "provide": "What {rest}?",
    "describe": "How would you describe {rest}?",
    "explain": "How would you explain {rest}?",
    "list": "What are {rest}?",
    "outline": "How would you outline {rest}?",
    "detail": "What are the details of {rest}?",
    "specify": "What would you specify for {rest}?",
    "identify": "What would you identify as {rest}?",
}

FALLBACK_TRANSFORM = "How do you address this requirement: {text}?"


@dataclass(frozen=True)
class QuestionRules:
    """Keyword tables and thresholds used by :class:`QuestionDetector`."""

    starters: Tuple[str, ...] = QUESTION_STARTERS
    imperative_verbs: Tuple[str, ...] = IMPERATIVE_VERBS
    keywords: Tuple[str, ...] = RFP_KEYWORDS
    transforms: Mapping[str, str] = field(default_factory=lambda: dict(REQUIREMENT_TRANSFORMS))
    fallback_transform: str = FALLBACK_TRANSFORM
    min_item_length: int = 20

    def contains_keyword(self, lowered: str) -> bool:
        return any(keyword in lowered for keyword in self.keywords)

    def starts_with_starter(self, lowered: str) -> bool:
        return any(lowered.startswith(f"{starter} ") or lowered.startswith(f"{starter}'") for starter in self.starters)

    def starts_with_imperative(self, lowered: str) -> bool:
        return any(lowered.startswith(f"{verb} ") for verb in self.imperative_verbs)

    def transform(self, requirement: str) -> str:
        """Rewrite a marker-stripped requirement as an interrogative."""

        trimmed = requirement.strip().rstrip(".;:").rstrip()
        lowered = trimmed.lower()
        for verb, template in self.transforms.items():
            prefix = f"{verb} "
            if lowered.startswith(prefix):
                rest = lowered[len(prefix):].strip()
                return template.format(rest=rest)
        return self.fallback_transform.format(text=trimmed)
