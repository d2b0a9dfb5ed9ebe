"""Pydantic models for the RfpRAG API."""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import Field

from rfprag.models import Knowledgebase, KnowledgebaseItem
from rfprag.serialization import CamelModel, RfpProcessingResultModel, RfpQuestionModel


class KnowledgebaseItemSummary(CamelModel):
    id: str = Field(..., description="Stable identifier for the ingested document")
    file_name: str = Field(..., description="Original file name of the document")
    chunk_count: int = Field(..., ge=0, description="Number of chunks created for the document")
    character_count: int = Field(..., ge=0, description="Length of the extracted text")
    created_at: datetime

    @classmethod
    def from_domain(cls, item: KnowledgebaseItem) -> "KnowledgebaseItemSummary":
        return cls(
            id=item.id,
            file_name=item.file_name,
            chunk_count=len(item.chunks),
            character_count=len(item.original_text),
            created_at=item.created_at,
        )


class KnowledgebaseSummary(CamelModel):
    version: str
    last_updated: datetime
    total_chunks: int = Field(..., ge=0)
    items: List[KnowledgebaseItemSummary]

    @classmethod
    def from_domain(cls, knowledgebase: Knowledgebase) -> "KnowledgebaseSummary":
        return cls(
            version=knowledgebase.version,
            last_updated=knowledgebase.last_updated,
            total_chunks=knowledgebase.chunk_count(),
            items=[KnowledgebaseItemSummary.from_domain(item) for item in knowledgebase.items],
        )


class AnswerEditRequest(CamelModel):
    answer: str = Field(..., description="Replacement answer text")


__all__ = [
    "AnswerEditRequest",
    "KnowledgebaseItemSummary",
    "KnowledgebaseSummary",
    "RfpProcessingResultModel",
    "RfpQuestionModel",
]
