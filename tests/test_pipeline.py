"""End-to-end runs of the processing coordinator with stub collaborators."""

from __future__ import annotations

import math
from typing import Mapping, Sequence

import pytest

from rfprag.models import (
    AnswerResult,
    Knowledgebase,
    KnowledgebaseItem,
    ProcessingStatus,
    ProgressEvent,
    RagSearchResult,
    TextChunk,
)
from rfprag.services.pipeline import PipelineConfig, ProcessingCoordinator, ensure_knowledgebase_ready
from rfprag.errors import EmptyKnowledgebaseError

RFP_TEXT = (
    "Section 1. Overview.\n"
    "Acme Corp seeks a vendor for logistics services.\n"
    "What is your delivery timeline?\n"
    "The contract term is two years."
)
RELATED = (0.81, math.sqrt(1 - 0.81**2))


class StubExtractor:
    def __init__(self, text: str = RFP_TEXT, error: Exception | None = None) -> None:
        self.text = text
        self.error = error

    def extract(self, data: bytes, *, file_name: str) -> str:
        if self.error is not None:
            raise self.error
        return self.text


class StubEmbedder:
    isolates_failures = False

    def __init__(
        self,
        vectors: Mapping[str, Sequence[float] | None] | None = None,
        default: Sequence[float] | None = (1.0, 0.0),
        error: Exception | None = None,
    ) -> None:
        self.vectors = dict(vectors or {})
        self.default = default
        self.error = error

    def embed(self, text: str):
        return tuple(self.vectors.get(text, self.default) or ())

    def embed_batch(self, texts):
        if self.error is not None:
            raise self.error
        return [self.vectors.get(text, self.default) for text in texts]


class StubGenerator:
    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.calls: list[tuple[str, list[RagSearchResult]]] = []

    def generate(self, question: str, passages: Sequence[RagSearchResult], *, max_passages: int = 5) -> AnswerResult:
        if self.fail_on and self.fail_on in question:
            raise RuntimeError("model offline")
        self.calls.append((question, list(passages)))
        top = passages[0]
        return AnswerResult(answer=f"Answer from {top.file_name}", confidence=0.7, source_documents=[top.file_name])


def _knowledgebase(*vectors: Sequence[float]) -> Knowledgebase:
    chunks = tuple(
        TextChunk(text=f"Delivery happens within {index + 2} weeks.", start_index=0, end_index=10, embedding=tuple(v))
        for index, v in enumerate(vectors)
    )
    return Knowledgebase(items=[KnowledgebaseItem(file_name="capabilities.txt", original_text="x", chunks=chunks)])


def _run(coordinator: ProcessingCoordinator, knowledgebase: Knowledgebase | None = None, name: str = "rfp.pdf"):
    events: list[ProgressEvent] = []
    result = coordinator.process(b"%PDF", name, knowledgebase or _knowledgebase(RELATED), events.append)
    return result, events


def test_single_question_completes_with_grounded_answer():
    generator = StubGenerator()
    kb = _knowledgebase(RELATED)
    coordinator = ProcessingCoordinator(StubExtractor(), StubEmbedder(), generator)

    result, events = _run(coordinator, kb)

    assert result.processing_status is ProcessingStatus.COMPLETED
    assert result.progress == 100
    assert result.completed_at is not None
    assert result.error_message == ""
    assert [q.text for q in result.questions] == ["What is your delivery timeline?"]
    question = result.questions[0]
    assert question.answer == "Answer from capabilities.txt"
    assert question.original_answer == question.answer
    assert question.confidence == pytest.approx(0.7)
    assert question.relevant_knowledgebase_items == [kb.items[0].id]
    assert question.embedding == (1.0, 0.0)
    passages = generator.calls[0][1]
    assert passages[0].similarity_score == pytest.approx(0.81)
    assert events[-1].percentage == 100
    assert events[-1].status is ProcessingStatus.COMPLETED


def test_progress_is_monotonic_and_visits_stages_in_order():
    coordinator = ProcessingCoordinator(
        StubExtractor("What is your cost? What is your timeline? Who is your lead?"),
        StubEmbedder(),
        StubGenerator(),
    )
    result, events = _run(coordinator)

    percentages = [event.percentage for event in events]
    assert percentages == sorted(percentages)
    assert all(0 <= value <= 100 for value in percentages)

    statuses: list[ProcessingStatus] = []
    for event in events:
        if not statuses or statuses[-1] is not event.status:
            statuses.append(event.status)
    assert statuses == [
        ProcessingStatus.UPLOADING,
        ProcessingStatus.EXTRACTING_TEXT,
        ProcessingStatus.DETECTING_QUESTIONS,
        ProcessingStatus.GENERATING_EMBEDDINGS,
        ProcessingStatus.RETRIEVING_RELEVANT_CONTENT,
        ProcessingStatus.GENERATING_ANSWERS,
        ProcessingStatus.COMPLETED,
    ]
    per_question = [event.message for event in events if event.message.startswith("Processing question")]
    assert per_question == [f"Processing question {i} of 3..." for i in (1, 2, 3)]
    assert result.processing_status is ProcessingStatus.COMPLETED


def test_empty_text_ends_in_error():
    coordinator = ProcessingCoordinator(StubExtractor("   "), StubEmbedder(), StubGenerator())
    result, events = _run(coordinator)

    assert result.processing_status is ProcessingStatus.ERROR
    assert "No text" in result.error_message
    assert result.questions == []
    assert result.current_step == "Error occurred"
    assert events[-1].status is ProcessingStatus.ERROR


def test_no_questions_ends_in_error():
    coordinator = ProcessingCoordinator(StubExtractor("The sky is blue. Grass is green."), StubEmbedder(), StubGenerator())
    result, _ = _run(coordinator)

    assert result.processing_status is ProcessingStatus.ERROR
    assert "No questions" in result.error_message
    assert result.extracted_text == "The sky is blue. Grass is green."


def test_extraction_error_is_reported_not_raised():
    coordinator = ProcessingCoordinator(StubExtractor(error=ValueError("corrupt pdf")), StubEmbedder(), StubGenerator())
    result, _ = _run(coordinator)

    assert result.processing_status is ProcessingStatus.ERROR
    assert "corrupt pdf" in result.error_message


def test_embedding_failure_keeps_detected_questions():
    coordinator = ProcessingCoordinator(StubExtractor(), StubEmbedder(error=RuntimeError("quota")), StubGenerator())
    result, _ = _run(coordinator)

    assert result.processing_status is ProcessingStatus.ERROR
    assert "quota" in result.error_message
    assert [q.text for q in result.questions] == ["What is your delivery timeline?"]
    assert result.questions[0].answer == ""


def test_missing_vector_fails_unless_backend_isolates_failures():
    question = "What is your delivery timeline?"
    strict = StubEmbedder(vectors={question: None})
    result, _ = _run(ProcessingCoordinator(StubExtractor(), strict, StubGenerator()))
    assert result.processing_status is ProcessingStatus.ERROR

    isolating = StubEmbedder(vectors={question: None})
    isolating.isolates_failures = True
    generator = StubGenerator()
    result, _ = _run(ProcessingCoordinator(StubExtractor(), isolating, generator))
    assert result.processing_status is ProcessingStatus.COMPLETED
    assert result.questions[0].embedding == ()
    assert result.questions[0].confidence == pytest.approx(0.1)
    assert generator.calls == []


def test_question_without_matches_gets_fallback_answer():
    generator = StubGenerator()
    config = PipelineConfig(fallback_answer="Nothing relevant.")
    coordinator = ProcessingCoordinator(StubExtractor(), StubEmbedder(default=(0.0, 1.0)), generator, config=config)
    result, _ = _run(coordinator, _knowledgebase((1.0, 0.0)))

    assert result.processing_status is ProcessingStatus.COMPLETED
    question = result.questions[0]
    assert question.answer == "Nothing relevant."
    assert question.confidence == pytest.approx(0.1)
    assert question.relevant_knowledgebase_items == []
    assert generator.calls == []


def test_answer_failure_keeps_earlier_answers():
    coordinator = ProcessingCoordinator(
        StubExtractor("What is your delivery timeline? What is your pricing model?"),
        StubEmbedder(),
        StubGenerator(fail_on="pricing"),
    )
    result, _ = _run(coordinator)

    assert result.processing_status is ProcessingStatus.ERROR
    assert "model offline" in result.error_message
    first, second = result.questions
    assert first.answer == "Answer from capabilities.txt"
    assert second.answer == ""


def test_dimension_mismatch_aborts_the_run():
    coordinator = ProcessingCoordinator(StubExtractor(), StubEmbedder(default=(1.0, 0.0, 0.0)), StubGenerator())
    result, _ = _run(coordinator)

    assert result.processing_status is ProcessingStatus.ERROR
    assert "dimension" in result.error_message.lower()


def test_raising_progress_sink_does_not_escape():
    def sink(event: ProgressEvent) -> None:
        raise RuntimeError("listener gone")

    coordinator = ProcessingCoordinator(StubExtractor(), StubEmbedder(), StubGenerator())
    result = coordinator.process(b"", "rfp.pdf", _knowledgebase(RELATED), sink)
    assert result.processing_status is ProcessingStatus.ERROR
    assert "listener gone" in result.error_message


def test_empty_knowledgebase_is_rejected_before_processing():
    with pytest.raises(EmptyKnowledgebaseError):
        ensure_knowledgebase_ready(Knowledgebase())
    kb = _knowledgebase(RELATED)
    assert ensure_knowledgebase_ready(kb) is kb
