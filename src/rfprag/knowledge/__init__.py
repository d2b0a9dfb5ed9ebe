"""Knowledge base persistence."""

from .store import InMemoryKnowledgeStore, JsonFileKnowledgeStore, KnowledgeStore

__all__ = ["InMemoryKnowledgeStore", "JsonFileKnowledgeStore", "KnowledgeStore"]
