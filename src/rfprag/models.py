"""Shared domain models used across the RfpRAG pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Sequence, Tuple
from uuid import uuid4


def _new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


Vector = Tuple[float, ...]


@dataclass(frozen=True)
class TextChunk:
    """Contiguous span of a knowledge base document.

    ``start_index`` and ``end_index`` are offsets into the chunker's
    whitespace-normalized output; ``end_index`` is inclusive.
    """

    text: str
    start_index: int
    end_index: int
    embedding: Vector = ()
    id: str = field(default_factory=_new_id)


@dataclass(frozen=True)
class KnowledgebaseItem:
    """One ingested corpus document with its chunk embeddings."""

    file_name: str
    original_text: str
    chunks: Tuple[TextChunk, ...] = ()
    original_text_embedding: Vector = ()
    created_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=_new_id)


@dataclass
class Knowledgebase:
    """Versioned collection of knowledge base items."""

    items: List[KnowledgebaseItem] = field(default_factory=list)
    version: str = "1.0"
    last_updated: datetime = field(default_factory=utcnow)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def chunk_count(self) -> int:
        return sum(len(item.chunks) for item in self.items)


@dataclass(frozen=True)
class RagSearchResult:
    """Chunk returned by similarity retrieval."""

    knowledgebase_item_id: str
    text_chunk_id: str
    text: str
    similarity_score: float
    file_name: str


@dataclass(frozen=True)
class AnswerResult:
    """Answer produced by a generation backend."""

    answer: str
    confidence: float
    source_documents: Sequence[str] = ()


@dataclass
class RfpQuestion:
    """A question detected in an RFP together with its generated answer."""

    text: str
    embedding: Vector = ()
    answer: str = ""
    original_answer: str = ""
    confidence: float = 0.0
    relevant_knowledgebase_items: List[str] = field(default_factory=list)
    is_answer_edited: bool = False
    id: str = field(default_factory=_new_id)

    def set_generated_answer(self, answer: str, confidence: float) -> None:
        self.answer = answer
        self.original_answer = answer
        self.confidence = confidence
        self.is_answer_edited = False

    def edit_answer(self, answer: str) -> None:
        self.answer = answer
        self.is_answer_edited = self.answer != self.original_answer

    def reset_answer(self) -> None:
        self.answer = self.original_answer
        self.is_answer_edited = False

    def add_relevant_items(self, item_ids: Sequence[str]) -> None:
        for item_id in item_ids:
            if item_id not in self.relevant_knowledgebase_items:
                self.relevant_knowledgebase_items.append(item_id)


class ProcessingStatus(str, Enum):
    """Pipeline states, in the order a successful run visits them."""

    NOT_STARTED = "NotStarted"
    UPLOADING = "Uploading"
    EXTRACTING_TEXT = "ExtractingText"
    DETECTING_QUESTIONS = "DetectingQuestions"
    GENERATING_EMBEDDINGS = "GeneratingEmbeddings"
    RETRIEVING_RELEVANT_CONTENT = "RetrievingRelevantContent"
    GENERATING_ANSWERS = "GeneratingAnswers"
    COMPLETED = "Completed"
    ERROR = "Error"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStatus.COMPLETED, ProcessingStatus.ERROR)


@dataclass
class RfpProcessingResult:
    """Aggregate record of one RFP processing run, mutated in place by the coordinator."""

    file_name: str
    extracted_text: str = ""
    questions: List[RfpQuestion] = field(default_factory=list)
    processing_status: ProcessingStatus = ProcessingStatus.NOT_STARTED
    current_step: str = ""
    progress: int = 0
    created_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    error_message: str = ""
    id: str = field(default_factory=_new_id)

    def find_question(self, question_id: str) -> RfpQuestion | None:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None


@dataclass(frozen=True)
class ProgressEvent:
    """Progress notification emitted by the coordinator."""

    status: ProcessingStatus
    message: str
    percentage: int
