"""Document extraction, chunking and knowledge base ingestion."""

from .chunker import TextChunker, normalize_whitespace, split_sentences
from .extraction import LangChainTextExtractor, TextExtractor
from .service import KnowledgebaseIngestor

__all__ = [
    "KnowledgebaseIngestor",
    "LangChainTextExtractor",
    "TextChunker",
    "TextExtractor",
    "normalize_whitespace",
    "split_sentences",
]
