"""Plain-text extraction from uploaded documents."""

from __future__ import annotations

import tempfile
import time
import unicodedata
from pathlib import Path
from typing import Mapping, Protocol, Sequence

from langchain_community.document_loaders import Docx2txtLoader, PyPDFLoader, TextLoader
from langchain_community.document_loaders.base import BaseLoader
from langchain_core.documents import Document as LCDocument

from rfprag.errors import ExtractionError, UnsupportedFileTypeError
from rfprag.metrics.observability import PipelineMetrics, get_logger


class TextExtractor(Protocol):
    """Protocol for text extraction back-ends."""

    def extract(self, data: bytes, *, file_name: str) -> str:
        """Return the plain text contained in ``data``."""


class LangChainTextExtractor:
    """Extract text through LangChain document loaders, one page per line block."""

    _LOADERS: Mapping[str, type[BaseLoader]] = {
        ".pdf": PyPDFLoader,
        ".docx": Docx2txtLoader,
        ".txt": TextLoader,
        ".md": TextLoader,
    }

    _logger = get_logger("extraction")

    def __init__(self, encoding: str = "utf-8") -> None:
        self._encoding = encoding

    @classmethod
    def supported_extensions(cls) -> tuple[str, ...]:
        return tuple(cls._LOADERS)

    def extract(self, data: bytes, *, file_name: str) -> str:
        suffix = Path(file_name).suffix.lower()
        loader_cls = self._LOADERS.get(suffix)
        if loader_cls is None:
            raise UnsupportedFileTypeError(f"Unsupported document type: {suffix or '<none>'}")

        start = time.perf_counter()
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / f"upload{suffix}"
            path.write_bytes(data)
            try:
                documents = self._build_loader(loader_cls, path).load()
            except Exception as exc:
                raise ExtractionError(f"Failed to extract text from {file_name}: {exc}") from exc

        text = self._join_pages(documents)
        duration = time.perf_counter() - start
        PipelineMetrics.observe_extraction(duration)
        self._logger.info(
            "extraction.complete",
            file_name=file_name,
            page_count=len(documents),
            characters=len(text),
            duration_seconds=duration,
        )
        return text

    def _build_loader(self, loader_cls: type[BaseLoader], path: Path) -> BaseLoader:
        if loader_cls is TextLoader:
            return loader_cls(str(path), encoding=self._encoding)
        return loader_cls(str(path))

    @staticmethod
    def _join_pages(documents: Sequence[LCDocument]) -> str:
        pages = [unicodedata.normalize("NFKC", document.page_content).replace("\u00a0", " ") for document in documents]
        return "\n".join(page.rstrip("\n") for page in pages)


__all__ = ["LangChainTextExtractor", "TextExtractor"]
