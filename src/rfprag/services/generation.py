"""Answer generation backends for RfpRAG."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import List, Protocol, Sequence

import httpx

from rfprag.config import Settings
from rfprag.errors import AnswerGenerationFailureError
from rfprag.metrics.observability import PipelineMetrics, get_logger
from rfprag.models import AnswerResult, RagSearchResult
from rfprag.services.confidence import ConfidenceWeights, score_confidence

LOGGER = get_logger("generation")

SYSTEM_PROMPT = (
    "You are an expert assistant helping to answer questions from Request for Proposal (RFP) documents. "
    "Your task is to provide clear, accurate, and comprehensive answers based on the provided context "
    "from the knowledgebase.\n\n"
    "Guidelines:\n"
    "1. Answer directly and professionally\n"
    "2. Use the provided context to support your answer\n"
    "3. If the context doesn't contain enough information, clearly state what additional information would be needed\n"
    "4. Structure your answer clearly with bullet points or numbered lists when appropriate\n"
    "5. Be specific and actionable in your recommendations\n"
    "6. If you're making assumptions, clearly state them"
)


@dataclass(frozen=True)
class GenerationConfig:
    """Configuration for answer generation."""

    model: str = "gpt-4"
    max_new_tokens: int = 512
    temperature: float = 0.3
    device: str | None = None
    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    timeout_seconds: float = 30.0


class AnswerGenerator(Protocol):
    """Protocol describing answer generation behaviour."""

    def generate(self, question: str, passages: Sequence[RagSearchResult], *, max_passages: int = 5) -> AnswerResult:
        """Return a grounded answer for ``question`` using the top ``max_passages`` passages."""


class PromptBuilder:
    """Builds the knowledge base context block handed to chat models."""

    def build_context(self, passages: Sequence[RagSearchResult]) -> str:
        if not passages:
            return ""
        lines = ["Based on the following relevant information from the knowledgebase:", ""]
        for passage in passages:
            lines.append(f"**Source: {passage.file_name} (Similarity: {passage.similarity_score:.1%})**")
            lines.append(passage.text)
            lines.append("")
        return "\n".join(lines)

    def build_user_message(self, question: str, passages: Sequence[RagSearchResult]) -> str:
        return (
            f"Context from knowledgebase:\n{self.build_context(passages)}\n\n"
            f"Question: {question}\n\n"
            "Please provide a comprehensive answer to this question based on the context provided above."
        )

    def build_messages(self, question: str, passages: Sequence[RagSearchResult]) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": self.build_user_message(question, passages)},
        ]


def _source_documents(passages: Sequence[RagSearchResult]) -> List[str]:
    names: List[str] = []
    for passage in passages:
        if passage.file_name not in names:
            names.append(passage.file_name)
    return names


class _BaseGenerator:
    """Shared passage trimming, confidence scoring and metrics."""

    def __init__(self, weights: ConfidenceWeights | None = None, prompt_builder: PromptBuilder | None = None) -> None:
        self._weights = weights or ConfidenceWeights()
        self._prompt_builder = prompt_builder or PromptBuilder()

    def _complete(self, question: str, passages: Sequence[RagSearchResult]) -> str:  # pragma: no cover - overridden
        raise NotImplementedError

    def generate(self, question: str, passages: Sequence[RagSearchResult], *, max_passages: int = 5) -> AnswerResult:
        if not question or not question.strip():
            raise AnswerGenerationFailureError("Question cannot be empty")
        selected = list(passages)[: max(max_passages, 0)]
        start = time.perf_counter()
        text = self._complete(question, selected).strip()
        duration = time.perf_counter() - start
        confidence = score_confidence(selected, self._weights)
        PipelineMetrics.observe_generation(duration, confidence)
        LOGGER.info(
            "generation.complete",
            question=question,
            passage_count=len(selected),
            confidence=confidence,
            duration_seconds=duration,
        )
        return AnswerResult(answer=text, confidence=confidence, source_documents=_source_documents(selected))


class TemplateAnswerGenerator(_BaseGenerator):
    """Simple deterministic generator used for tests and offline environments."""

    def _complete(self, question: str, passages: Sequence[RagSearchResult]) -> str:
        if not passages:
            return "I do not have enough relevant context to answer that question."
        sources = "\n".join(f"[{index + 1}] {p.file_name}" for index, p in enumerate(passages))
        return (
            f"{passages[0].text}\n\n"
            f"Based on the knowledgebase, this is the best match for the question '{question}'.\n"
            f"Sources:\n{sources}"
        )


class TransformersAnswerGenerator(TemplateAnswerGenerator):
    """Generator that calls a local chat model via Transformers.

    The model loads on first use. If it cannot be loaded the generator
    logs a warning once and answers with the template instead.
    """

    def __init__(self, config: GenerationConfig | None = None, weights: ConfidenceWeights | None = None) -> None:
        super().__init__(weights)
        self._config = config or GenerationConfig(model="Qwen/Qwen2.5-1.5B-Instruct")
        self._tokenizer = None
        self._model = None
        self._load_attempted = False

    @property
    def config(self) -> GenerationConfig:
        return self._config

    @property
    def uses_template(self) -> bool:
        """True once loading the model has failed."""

        return self._load_attempted and self._model is None

    def _ensure_model(self) -> bool:
        if self._load_attempted:
            return self._model is not None
        self._load_attempted = True
        try:
            from transformers import AutoModelForCausalLM, AutoTokenizer

            tokenizer = AutoTokenizer.from_pretrained(self._config.model, trust_remote_code=True)
            model = AutoModelForCausalLM.from_pretrained(self._config.model, trust_remote_code=True)
            if tokenizer.pad_token is None and tokenizer.eos_token is not None:
                tokenizer.pad_token = tokenizer.eos_token
            if self._config.device:
                model.to(self._config.device)
        except Exception as exc:  # pragma: no cover - optional heavy dependency
            LOGGER.warning("generation.template_fallback", model=self._config.model, reason=str(exc))
            return False
        self._tokenizer, self._model = tokenizer, model
        LOGGER.info("generation.model_loaded", model=self._config.model)
        return True

    def _complete(self, question: str, passages: Sequence[RagSearchResult]) -> str:
        if not self._ensure_model():
            return super()._complete(question, passages)
        import torch

        messages = self._prompt_builder.build_messages(question, passages)
        prompt = self._tokenizer.apply_chat_template(messages, tokenize=False, add_generation_prompt=True)
        tokenized = self._tokenizer(prompt, return_tensors="pt", padding=True)
        input_ids = tokenized.input_ids
        attention_mask = tokenized.attention_mask
        prompt_length = input_ids.shape[1]
        if self._config.device:
            input_ids = input_ids.to(self._config.device)
            attention_mask = attention_mask.to(self._config.device)
        try:
            with torch.no_grad():
                output = self._model.generate(
                    input_ids,
                    attention_mask=attention_mask,
                    max_new_tokens=self._config.max_new_tokens,
                    temperature=self._config.temperature,
                )
        except Exception as exc:
            raise AnswerGenerationFailureError(f"Failed to generate answer: {exc}") from exc
        return self._tokenizer.decode(output[0][prompt_length:], skip_special_tokens=True)


class OpenAIAnswerGenerator(_BaseGenerator):
    """Generator for OpenAI-compatible ``/chat/completions`` endpoints."""

    def __init__(
        self,
        config: GenerationConfig | None = None,
        weights: ConfidenceWeights | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        super().__init__(weights)
        self._config = config or GenerationConfig()
        headers = {"Authorization": f"Bearer {self._config.api_key}"} if self._config.api_key else None
        self._client = client or httpx.Client(
            base_url=self._config.base_url,
            timeout=self._config.timeout_seconds,
            headers=headers,
        )

    @property
    def config(self) -> GenerationConfig:
        return self._config

    def _complete(self, question: str, passages: Sequence[RagSearchResult]) -> str:
        payload = {
            "model": self._config.model,
            "messages": self._prompt_builder.build_messages(question, passages),
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_new_tokens,
        }
        try:
            response = self._client.post("/chat/completions", json=payload)
            response.raise_for_status()
            return str(response.json()["choices"][0]["message"]["content"])
        except (httpx.HTTPError, KeyError, IndexError, ValueError) as exc:
            raise AnswerGenerationFailureError(f"Failed to generate answer: {exc}") from exc

    def close(self) -> None:
        self._client.close()


DEFAULT_GENERATOR_MODELS = {
    "template": "template",
    "transformers": "Qwen/Qwen2.5-1.5B-Instruct",
    "openai": "gpt-4",
}


def build_answer_generator(settings: Settings) -> AnswerGenerator:
    """Instantiate the answer backend selected by ``settings.answer_provider``.

    ``settings.generator_model`` overrides the provider's default model.
    """

    weights = ConfidenceWeights.from_settings(settings)
    config = GenerationConfig(
        model=settings.generator_model or DEFAULT_GENERATOR_MODELS[settings.answer_provider],
        max_new_tokens=settings.generator_max_new_tokens,
        temperature=settings.generator_temperature,
        device=settings.generator_device,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout_seconds=settings.request_timeout_seconds,
    )
    if settings.answer_provider == "openai":
        return OpenAIAnswerGenerator(config, weights)
    if settings.answer_provider == "transformers":
        return TransformersAnswerGenerator(config, weights)
    LOGGER.info("generation.template_mode")
    return TemplateAnswerGenerator(weights)
