"""RFP processing pipeline: extraction, detection, embedding, retrieval and answering."""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import List, Optional, Sequence

from rfprag.config import Settings
from rfprag.detection import QuestionDetector
from rfprag.embeddings import EmbeddingBackend, build_embedding_backend
from rfprag.errors import (
    AnswerGenerationFailureError,
    EmbeddingFailureError,
    EmptyKnowledgebaseError,
    NoQuestionsDetectedError,
    NoTextExtractedError,
)
from rfprag.ingestion.extraction import LangChainTextExtractor, TextExtractor
from rfprag.metrics.observability import PipelineMetrics, TimedSection, get_logger
from rfprag.models import Knowledgebase, ProcessingStatus, RfpProcessingResult, RfpQuestion, utcnow
from rfprag.retrieval import RetrievalConfig, Retriever, SimilarityRetriever
from rfprag.services.generation import AnswerGenerator, build_answer_generator
from rfprag.services.state import PHASE_COUNT, ProcessingStateMachine, ProgressReporter, ProgressSink, phase_start

_ANSWER_SPAN_END = (PHASE_COUNT - 1) * 100 // PHASE_COUNT


@dataclass(frozen=True)
class PipelineConfig:
    """Retrieval thresholds and fallback behaviour for the coordinator."""

    top_k: int = 5
    min_similarity: float = 0.3
    max_passages: int = 5
    fallback_answer: str = "No relevant information found in the knowledgebase to answer this question."
    fallback_confidence: float = 0.1

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineConfig":
        return cls(
            top_k=settings.retrieval_top_k,
            min_similarity=settings.retrieval_min_similarity,
            max_passages=settings.max_context_passages,
            fallback_answer=settings.fallback_answer,
            fallback_confidence=settings.fallback_confidence,
        )


def ensure_knowledgebase_ready(knowledgebase: Knowledgebase | None) -> Knowledgebase:
    """Caller-side precondition: raise :class:`EmptyKnowledgebaseError` unless there is content."""

    if knowledgebase is None or knowledgebase.is_empty:
        raise EmptyKnowledgebaseError()
    return knowledgebase


class ProcessingCoordinator:
    """Run one RFP through the pipeline, reporting progress and never raising.

    Failures move the result to ``ERROR`` with the exception message; fields
    populated before the failure (extracted text, questions, answers so far)
    are kept on the returned result.
    """

    def __init__(
        self,
        extractor: TextExtractor,
        embedder: EmbeddingBackend,
        generator: AnswerGenerator,
        *,
        detector: QuestionDetector | None = None,
        retriever: Retriever | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self._config = config or PipelineConfig()
        self._extractor = extractor
        self._embedder = embedder
        self._generator = generator
        self._detector = detector or QuestionDetector()
        self._retriever = retriever or SimilarityRetriever(
            RetrievalConfig(top_k=self._config.top_k, min_similarity=self._config.min_similarity),
        )
        self._logger = get_logger("pipeline")

    def process(
        self,
        data: bytes,
        file_name: str,
        knowledgebase: Knowledgebase,
        progress: Optional[ProgressSink] = None,
    ) -> RfpProcessingResult:
        result = RfpProcessingResult(file_name=file_name)
        machine = ProcessingStateMachine()
        reporter = ProgressReporter(progress)
        self._logger.info("pipeline.start", file_name=file_name, size_bytes=len(data))

        try:
            self._enter(result, machine, reporter, ProcessingStatus.UPLOADING, "Uploading document")

            self._enter(result, machine, reporter, ProcessingStatus.EXTRACTING_TEXT, "Extracting text from document")
            with TimedSection(partial(PipelineMetrics.observe_stage, "extract")):
                result.extracted_text = self._extractor.extract(data, file_name=file_name) or ""
            if not result.extracted_text.strip():
                raise NoTextExtractedError()

            self._enter(result, machine, reporter, ProcessingStatus.DETECTING_QUESTIONS, "Detecting questions")
            with TimedSection(partial(PipelineMetrics.observe_stage, "detect")):
                detected = self._detector.detect(result.extracted_text)
            PipelineMetrics.observe_detection(len(detected))
            if not detected:
                raise NoQuestionsDetectedError()
            result.questions = [RfpQuestion(text=text) for text in detected]

            self._enter(result, machine, reporter, ProcessingStatus.GENERATING_EMBEDDINGS, "Generating embeddings")
            with TimedSection(partial(PipelineMetrics.observe_stage, "embed")):
                self._embed_questions(result.questions)

            self._enter(
                result,
                machine,
                reporter,
                ProcessingStatus.RETRIEVING_RELEVANT_CONTENT,
                "Performing RAG for each question",
            )
            with TimedSection(partial(PipelineMetrics.observe_stage, "answer")):
                self._answer_questions(result, machine, reporter, knowledgebase)

            machine.advance(ProcessingStatus.COMPLETED)
            result.processing_status = ProcessingStatus.COMPLETED
            result.current_step = "Completed"
            result.completed_at = utcnow()
            self._report(result, reporter, "Processing completed!", 100)
            PipelineMetrics.observe_run(ProcessingStatus.COMPLETED.value)
            self._logger.info("pipeline.complete", file_name=file_name, question_count=len(result.questions))
        except Exception as exc:
            if machine.state.is_terminal:
                self._logger.warning("pipeline.post_completion_error", file_name=file_name, detail=str(exc))
                return result
            machine.fail()
            result.processing_status = ProcessingStatus.ERROR
            result.error_message = str(exc) or exc.__class__.__name__
            result.current_step = "Error occurred"
            try:
                self._report(result, reporter, f"Error: {result.error_message}", result.progress)
            except Exception as sink_exc:
                self._logger.warning("pipeline.progress_sink_failed", detail=str(sink_exc))
            PipelineMetrics.observe_run(ProcessingStatus.ERROR.value)
            self._logger.error(
                "pipeline.error",
                file_name=file_name,
                error_type=exc.__class__.__name__,
                detail=result.error_message,
                answered=sum(1 for question in result.questions if question.answer),
            )
        return result

    def _embed_questions(self, questions: Sequence[RfpQuestion]) -> None:
        texts = [question.text for question in questions]
        try:
            vectors = list(self._embedder.embed_batch(texts))
        except EmbeddingFailureError:
            raise
        except Exception as exc:
            raise EmbeddingFailureError(f"Failed to generate embeddings: {exc}") from exc
        if len(vectors) != len(questions):
            raise EmbeddingFailureError(
                f"Embedding backend returned {len(vectors)} vectors for {len(questions)} questions",
            )
        isolated = bool(getattr(self._embedder, "isolates_failures", False))
        for question, vector in zip(questions, vectors):
            if vector is None:
                if not isolated:
                    raise EmbeddingFailureError(f"No embedding returned for question: {question.text}")
                self._logger.warning("pipeline.embedding_degraded", question=question.text)
                vector = ()
            question.embedding = tuple(vector)

    def _answer_questions(
        self,
        result: RfpProcessingResult,
        machine: ProcessingStateMachine,
        reporter: ProgressReporter,
        knowledgebase: Knowledgebase,
    ) -> None:
        total = len(result.questions)
        start = phase_start(ProcessingStatus.RETRIEVING_RELEVANT_CONTENT)
        for index, question in enumerate(result.questions):
            percentage = start + index * (_ANSWER_SPAN_END - start) // total
            self._report(result, reporter, f"Processing question {index + 1} of {total}...", percentage)

            passages = self._retriever.retrieve(
                question.embedding,
                knowledgebase,
                top_k=self._config.top_k,
                min_similarity=self._config.min_similarity,
            )
            if machine.state is ProcessingStatus.RETRIEVING_RELEVANT_CONTENT:
                machine.advance(ProcessingStatus.GENERATING_ANSWERS)
                result.processing_status = ProcessingStatus.GENERATING_ANSWERS
                result.current_step = "Generating answers"
                self._report(result, reporter, "Generating answers...", percentage)

            if not passages:
                question.set_generated_answer(self._config.fallback_answer, self._config.fallback_confidence)
                continue

            question.add_relevant_items([passage.knowledgebase_item_id for passage in passages])
            try:
                answer = self._generator.generate(question.text, passages, max_passages=self._config.max_passages)
            except AnswerGenerationFailureError:
                raise
            except Exception as exc:
                raise AnswerGenerationFailureError(f"Failed to generate answer: {exc}") from exc
            question.set_generated_answer(answer.answer, answer.confidence)

    def _enter(
        self,
        result: RfpProcessingResult,
        machine: ProcessingStateMachine,
        reporter: ProgressReporter,
        status: ProcessingStatus,
        step: str,
    ) -> None:
        machine.advance(status)
        result.processing_status = status
        result.current_step = step
        self._logger.info("pipeline.stage", stage=status.value, file_name=result.file_name)
        self._report(result, reporter, f"{step}...", phase_start(status))

    @staticmethod
    def _report(result: RfpProcessingResult, reporter: ProgressReporter, message: str, percentage: int) -> None:
        event = reporter.emit(result.processing_status, message, percentage)
        result.progress = event.percentage


def build_coordinator(
    settings: Settings,
    *,
    extractor: TextExtractor | None = None,
    embedder: EmbeddingBackend | None = None,
    generator: AnswerGenerator | None = None,
) -> ProcessingCoordinator:
    """Wire a coordinator from settings, allowing any collaborator to be swapped."""

    return ProcessingCoordinator(
        extractor=extractor or LangChainTextExtractor(),
        embedder=embedder or build_embedding_backend(settings),
        generator=generator or build_answer_generator(settings),
        config=PipelineConfig.from_settings(settings),
    )


__all__: List[str] = [
    "PipelineConfig",
    "ProcessingCoordinator",
    "build_coordinator",
    "ensure_knowledgebase_ready",
]
