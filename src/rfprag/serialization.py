"""camelCase wire models for persisted knowledge bases and exported results."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from rfprag.models import (
    Knowledgebase,
    KnowledgebaseItem,
    ProcessingStatus,
    RfpProcessingResult,
    RfpQuestion,
    TextChunk,
    utcnow,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self, *, indent: int | None = 2) -> str:
        return self.model_dump_json(by_alias=True, indent=indent)


class TextChunkModel(CamelModel):
    id: str
    text: str
    embedding: List[float] = Field(default_factory=list)
    start_index: int = 0
    end_index: int = 0

    @classmethod
    def from_domain(cls, chunk: TextChunk) -> "TextChunkModel":
        return cls(
            id=chunk.id,
            text=chunk.text,
            embedding=list(chunk.embedding),
            start_index=chunk.start_index,
            end_index=chunk.end_index,
        )

    def to_domain(self) -> TextChunk:
        return TextChunk(
            id=self.id,
            text=self.text,
            embedding=tuple(self.embedding),
            start_index=self.start_index,
            end_index=self.end_index,
        )


class KnowledgebaseItemModel(CamelModel):
    id: str
    file_name: str
    original_text: str = ""
    original_text_embedding: List[float] = Field(default_factory=list)
    chunks: List[TextChunkModel] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_domain(cls, item: KnowledgebaseItem) -> "KnowledgebaseItemModel":
        return cls(
            id=item.id,
            file_name=item.file_name,
            original_text=item.original_text,
            original_text_embedding=list(item.original_text_embedding),
            chunks=[TextChunkModel.from_domain(chunk) for chunk in item.chunks],
            created_at=item.created_at,
        )

    def to_domain(self) -> KnowledgebaseItem:
        return KnowledgebaseItem(
            id=self.id,
            file_name=self.file_name,
            original_text=self.original_text,
            original_text_embedding=tuple(self.original_text_embedding),
            chunks=tuple(chunk.to_domain() for chunk in self.chunks),
            created_at=self.created_at,
        )


class KnowledgebaseDocument(CamelModel):
    """Persisted form: ``{"version", "items", "lastUpdated"}``."""

    version: str = "1.0"
    items: List[KnowledgebaseItemModel] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_domain(cls, knowledgebase: Knowledgebase) -> "KnowledgebaseDocument":
        return cls(
            version=knowledgebase.version,
            items=[KnowledgebaseItemModel.from_domain(item) for item in knowledgebase.items],
            last_updated=knowledgebase.last_updated,
        )

    def to_domain(self) -> Knowledgebase:
        return Knowledgebase(
            version=self.version,
            items=[item.to_domain() for item in self.items],
            last_updated=self.last_updated,
        )


class RfpQuestionModel(CamelModel):
    id: str
    text: str
    embedding: List[float] = Field(default_factory=list)
    answer: str = ""
    confidence: float = 0.0
    relevant_knowledgebase_items: List[str] = Field(default_factory=list)
    is_answer_edited: bool = False
    original_answer: str = ""

    @classmethod
    def from_domain(cls, question: RfpQuestion) -> "RfpQuestionModel":
        return cls(
            id=question.id,
            text=question.text,
            embedding=list(question.embedding),
            answer=question.answer,
            confidence=question.confidence,
            relevant_knowledgebase_items=list(question.relevant_knowledgebase_items),
            is_answer_edited=question.is_answer_edited,
            original_answer=question.original_answer,
        )

    def to_domain(self) -> RfpQuestion:
        return RfpQuestion(
            id=self.id,
            text=self.text,
            embedding=tuple(self.embedding),
            answer=self.answer,
            original_answer=self.original_answer,
            confidence=self.confidence,
            relevant_knowledgebase_items=list(self.relevant_knowledgebase_items),
            is_answer_edited=self.is_answer_edited,
        )


class RfpProcessingResultModel(CamelModel):
    id: str
    file_name: str
    extracted_text: str = ""
    questions: List[RfpQuestionModel] = Field(default_factory=list)
    processing_status: ProcessingStatus = ProcessingStatus.NOT_STARTED
    current_step: str = ""
    progress: int = Field(default=0, ge=0, le=100)
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    error_message: str = ""

    @classmethod
    def from_domain(cls, result: RfpProcessingResult) -> "RfpProcessingResultModel":
        return cls(
            id=result.id,
            file_name=result.file_name,
            extracted_text=result.extracted_text,
            questions=[RfpQuestionModel.from_domain(question) for question in result.questions],
            processing_status=result.processing_status,
            current_step=result.current_step,
            progress=result.progress,
            created_at=result.created_at,
            completed_at=result.completed_at,
            error_message=result.error_message,
        )

    def to_domain(self) -> RfpProcessingResult:
        return RfpProcessingResult(
            id=self.id,
            file_name=self.file_name,
            extracted_text=self.extracted_text,
            questions=[question.to_domain() for question in self.questions],
            processing_status=self.processing_status,
            current_step=self.current_step,
            progress=self.progress,
            created_at=self.created_at,
            completed_at=self.completed_at,
            error_message=self.error_message,
        )
