"""Knowledge base persistence backends."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import List, Protocol

from pydantic import ValidationError

from rfprag.metrics.observability import PipelineMetrics, get_logger
from rfprag.models import Knowledgebase, KnowledgebaseItem, utcnow
from rfprag.serialization import KnowledgebaseDocument

LOGGER = get_logger("knowledge")


class KnowledgeStore(Protocol):
    """Protocol for knowledge base persistence backends."""

    def load(self) -> Knowledgebase:
        """Return the stored knowledge base, or an empty one if nothing is stored."""

    def save(self, knowledgebase: Knowledgebase) -> None:
        """Persist ``knowledgebase``, stamping ``last_updated``."""

    def upsert_by_file_name(self, item: KnowledgebaseItem) -> None:
        """Add ``item``, replacing any item with the same file name (case-insensitive)."""

    def remove_by_id(self, item_id: str) -> bool:
        """Remove the item with ``item_id``; return whether anything was removed."""

    def clear(self) -> None:
        """Remove all stored items."""


class _StoreOperations:
    """``upsert``/``remove`` implemented on top of ``load``/``save``."""

    _lock: threading.RLock

    def load(self) -> Knowledgebase:  # pragma: no cover - overridden
        raise NotImplementedError

    def save(self, knowledgebase: Knowledgebase) -> None:  # pragma: no cover - overridden
        raise NotImplementedError

    def upsert_by_file_name(self, item: KnowledgebaseItem) -> None:
        with self._lock:
            knowledgebase = self.load()
            target = item.file_name.casefold()
            replaced = [existing for existing in knowledgebase.items if existing.file_name.casefold() == target]
            knowledgebase.items = [
                existing for existing in knowledgebase.items if existing.file_name.casefold() != target
            ]
            knowledgebase.items.append(item)
            self.save(knowledgebase)
        LOGGER.info("knowledge.upsert", file_name=item.file_name, item_id=item.id, replaced=len(replaced))

    def remove_by_id(self, item_id: str) -> bool:
        with self._lock:
            knowledgebase = self.load()
            remaining: List[KnowledgebaseItem] = [item for item in knowledgebase.items if item.id != item_id]
            if len(remaining) == len(knowledgebase.items):
                return False
            knowledgebase.items = remaining
            self.save(knowledgebase)
        LOGGER.info("knowledge.remove", item_id=item_id)
        return True


class InMemoryKnowledgeStore(_StoreOperations):
    """Process-local store; contents are lost on exit."""

    def __init__(self, knowledgebase: Knowledgebase | None = None) -> None:
        self._lock = threading.RLock()
        self._document = KnowledgebaseDocument.from_domain(knowledgebase or Knowledgebase())

    def load(self) -> Knowledgebase:
        with self._lock:
            return self._document.model_copy(deep=True).to_domain()

    def save(self, knowledgebase: Knowledgebase) -> None:
        with self._lock:
            knowledgebase.last_updated = utcnow()
            self._document = KnowledgebaseDocument.from_domain(knowledgebase)
        PipelineMetrics.knowledgebase_items.set(len(knowledgebase.items))

    def clear(self) -> None:
        with self._lock:
            self._document = KnowledgebaseDocument()
        PipelineMetrics.knowledgebase_items.set(0)


class JsonFileKnowledgeStore(_StoreOperations):
    """Store the knowledge base as a single versioned JSON document on disk."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Knowledgebase:
        with self._lock:
            if not self._path.exists():
                return Knowledgebase()
            try:
                raw = self._path.read_text(encoding="utf-8")
                if not raw.strip():
                    return Knowledgebase()
                return KnowledgebaseDocument.model_validate_json(raw).to_domain()
            except (OSError, UnicodeDecodeError, ValidationError) as exc:
                LOGGER.warning("knowledge.load_failed", path=str(self._path), detail=str(exc))
                return Knowledgebase()

    def save(self, knowledgebase: Knowledgebase) -> None:
        knowledgebase.last_updated = utcnow()
        payload = KnowledgebaseDocument.from_domain(knowledgebase).to_json()
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp_path.write_text(payload, encoding="utf-8")
            tmp_path.replace(self._path)
        PipelineMetrics.knowledgebase_items.set(len(knowledgebase.items))
        LOGGER.info("knowledge.saved", path=str(self._path), item_count=len(knowledgebase.items))

    def clear(self) -> None:
        with self._lock:
            self._path.unlink(missing_ok=True)
        PipelineMetrics.knowledgebase_items.set(0)
        LOGGER.info("knowledge.cleared", path=str(self._path))
