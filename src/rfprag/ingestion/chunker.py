"""Sentence-aligned text chunking."""

from __future__ import annotations

import re
from typing import List

from rfprag.models import TextChunk

_WHITESPACE = re.compile(r"\s+")
SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def split_sentences(text: str) -> List[str]:
    """Split already-normalized text on terminator-plus-whitespace boundaries."""

    return [sentence.strip() for sentence in SENTENCE_BOUNDARY.split(text) if sentence.strip()]


class TextChunker:
    """Greedily pack whole sentences into chunks of at most ``max_chunk_size`` characters.

    A sentence longer than the limit is emitted alone rather than split.
    Offsets run over the concatenation of the emitted chunk texts.
    """

    def __init__(self, max_chunk_size: int = 250) -> None:
        if max_chunk_size <= 0:
            raise ValueError("max_chunk_size must be positive")
        self._max_chunk_size = max_chunk_size

    @property
    def max_chunk_size(self) -> int:
        return self._max_chunk_size

    def split(self, text: str, max_chunk_size: int | None = None) -> List[TextChunk]:
        limit = self._max_chunk_size if max_chunk_size is None else max_chunk_size
        if limit <= 0:
            raise ValueError("max_chunk_size must be positive")
        normalized = normalize_whitespace(text or "")
        if not normalized:
            return []

        chunks: List[TextChunk] = []
        current: List[str] = []
        current_length = 0
        start_index = 0

        for sentence in split_sentences(normalized):
            if current and current_length + 1 + len(sentence) > limit:
                chunk = self._make_chunk(current, start_index)
                chunks.append(chunk)
                start_index += len(chunk.text)
                current = []
                current_length = 0
            current_length += len(sentence) + (1 if current else 0)
            current.append(sentence)

        if current:
            chunks.append(self._make_chunk(current, start_index))
        return chunks

    @staticmethod
    def _make_chunk(sentences: List[str], start_index: int) -> TextChunk:
        text = " ".join(sentences)
        return TextChunk(text=text, start_index=start_index, end_index=start_index + len(text) - 1)
