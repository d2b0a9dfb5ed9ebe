"""Question detection."""

from .detector import QuestionDetector
from .rules import IMPERATIVE_VERBS, QUESTION_STARTERS, REQUIREMENT_TRANSFORMS, RFP_KEYWORDS, QuestionRules

__all__ = [
    "IMPERATIVE_VERBS",
    "QUESTION_STARTERS",
    "REQUIREMENT_TRANSFORMS",
    "RFP_KEYWORDS",
    "QuestionDetector",
    "QuestionRules",
]
