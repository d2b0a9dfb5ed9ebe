"""Service layer orchestrations for RfpRAG."""

from .confidence import ConfidenceWeights, score_confidence
from .generation import (
    AnswerGenerator,
    GenerationConfig,
    OpenAIAnswerGenerator,
    PromptBuilder,
    TemplateAnswerGenerator,
    TransformersAnswerGenerator,
    build_answer_generator,
)
from .pipeline import PipelineConfig, ProcessingCoordinator, build_coordinator, ensure_knowledgebase_ready
from .state import Outcome, ProcessingStateMachine, ProgressReporter, phase_start

__all__ = [
    "AnswerGenerator",
    "ConfidenceWeights",
    "GenerationConfig",
    "OpenAIAnswerGenerator",
    "Outcome",
    "PipelineConfig",
    "ProcessingCoordinator",
    "ProcessingStateMachine",
    "ProgressReporter",
    "PromptBuilder",
    "TemplateAnswerGenerator",
    "TransformersAnswerGenerator",
    "build_answer_generator",
    "build_coordinator",
    "ensure_knowledgebase_ready",
    "phase_start",
    "score_confidence",
]
