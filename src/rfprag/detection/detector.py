"""Heuristic detection of explicit and implicit questions in RFP text."""

from __future__ import annotations

import re
from typing import Iterator, List

from rfprag.detection.rules import QuestionRules
from rfprag.ingestion.chunker import normalize_whitespace, split_sentences
from rfprag.metrics.observability import get_logger

_NUMBERED_ITEM = re.compile(r"^\d+\.\s+(?P<body>.*)$")
_BULLET_ITEM = re.compile(r"^[•\-*]\s+(?P<body>.*)$")
_INLINE_WHITESPACE = re.compile(r"[^\S\n]+")


class QuestionDetector:
    """Find the questions an RFP asks, explicitly or as list-item requirements.

    Explicit questions are sentences ending in ``?``, sentences opening with
    an interrogative or modal starter, and imperative requests that mention
    an RFP keyword. Implicit questions come from numbered or bulleted list
    items mentioning an RFP keyword, rewritten into interrogative form.
    Results are deduplicated by exact text only.
    """

    def __init__(self, rules: QuestionRules | None = None) -> None:
        self._rules = rules or QuestionRules()
        self._logger = get_logger("detection")

    @property
    def rules(self) -> QuestionRules:
        return self._rules

    def detect(self, text: str) -> List[str]:
        if not text or not text.strip():
            return []
        explicit = [sentence for sentence in split_sentences(normalize_whitespace(text)) if self.is_question(sentence)]
        implicit = list(self._implicit_questions(text))

        seen: set[str] = set()
        questions: List[str] = []
        for question in explicit + implicit:
            if question in seen:
                continue
            seen.add(question)
            questions.append(question)
        self._logger.info(
            "detection.complete",
            explicit_count=len(explicit),
            implicit_count=len(implicit),
            question_count=len(questions),
        )
        return questions

    def is_question(self, sentence: str) -> bool:
        if not sentence or not sentence.strip():
            return False
        lowered = sentence.strip().lower()
        if lowered.endswith("?"):
            return True
        if self._rules.starts_with_starter(lowered):
            return True
        return self._rules.starts_with_imperative(lowered) and self._rules.contains_keyword(lowered)

    def _implicit_questions(self, text: str) -> Iterator[str]:
        for item in self._list_items(text):
            if len(item) < self._rules.min_item_length:
                continue
            if not self._rules.contains_keyword(item.lower()):
                continue
            yield self._rules.transform(item)

    @staticmethod
    def _list_items(text: str) -> Iterator[str]:
        """Yield marker-stripped list items; an item ends at the next marker or a blank line."""

        current: List[str] | None = None
        for raw_line in text.splitlines():
            line = _INLINE_WHITESPACE.sub(" ", raw_line).strip()
            match = _NUMBERED_ITEM.match(line) or _BULLET_ITEM.match(line)
            if not line or match:
                if current:
                    yield " ".join(current).strip()
                current = [match.group("body")] if match else None
            elif current is not None:
                current.append(line)
        if current:
            yield " ".join(current).strip()


__all__ = ["QuestionDetector"]
