"""Exception hierarchy shared by the RfpRAG pipeline and its collaborators."""

from __future__ import annotations


class RfpRagError(RuntimeError):
    """Base class for all RfpRAG errors."""


class ExtractionError(RfpRagError):
    """Raised when text extraction fails for a document."""


class UnsupportedFileTypeError(ExtractionError):
    """Raised when a document extension has no extractor."""


class NoTextExtractedError(RfpRagError):
    """Raised when extraction succeeded but produced no usable text."""

    def __init__(self, message: str = "No text could be extracted from the document") -> None:
        super().__init__(message)


class NoQuestionsDetectedError(RfpRagError):
    """Raised when the question detector finds nothing to answer."""

    def __init__(self, message: str = "No questions detected in the document") -> None:
        super().__init__(message)


class DimensionMismatchError(RfpRagError, ValueError):
    """Raised when two embedding vectors of different length are compared."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Embedding dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class EmbeddingFailureError(RfpRagError):
    """Raised when the embedding backend cannot produce vectors for a batch."""


class AnswerGenerationFailureError(RfpRagError):
    """Raised when the answer backend fails for a question."""


class EmptyKnowledgebaseError(RfpRagError):
    """Raised when processing is requested against an empty knowledge base."""

    def __init__(self, message: str = "The knowledgebase is empty. Add documents before processing an RFP.") -> None:
        super().__init__(message)


class IllegalTransitionError(RfpRagError):
    """Raised when the processing state machine is driven out of order."""


__all__ = [
    "AnswerGenerationFailureError",
    "DimensionMismatchError",
    "EmbeddingFailureError",
    "EmptyKnowledgebaseError",
    "ExtractionError",
    "IllegalTransitionError",
    "NoQuestionsDetectedError",
    "NoTextExtractedError",
    "RfpRagError",
    "UnsupportedFileTypeError",
]
