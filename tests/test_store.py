from __future__ import annotations

import json
from pathlib import Path

from rfprag.knowledge import InMemoryKnowledgeStore, JsonFileKnowledgeStore
from rfprag.models import KnowledgebaseItem, TextChunk


def _item(file_name: str, text: str = "We deliver in two weeks.") -> KnowledgebaseItem:
    chunk = TextChunk(text=text, start_index=0, end_index=len(text) - 1, embedding=(0.6, 0.8))
    return KnowledgebaseItem(file_name=file_name, original_text=text, chunks=(chunk,), original_text_embedding=(0.6, 0.8))


def test_json_store_round_trip(tmp_path: Path):
    store = JsonFileKnowledgeStore(tmp_path / "kb" / "knowledgebase.json")
    item = _item("capabilities.txt")
    store.upsert_by_file_name(item)

    reloaded = JsonFileKnowledgeStore(store.path).load()
    assert reloaded.items == [item]
    assert reloaded.version == "1.0"


def test_json_store_uses_camel_case_document(tmp_path: Path):
    store = JsonFileKnowledgeStore(tmp_path / "knowledgebase.json")
    store.upsert_by_file_name(_item("capabilities.txt"))

    document = json.loads(store.path.read_text(encoding="utf-8"))
    assert set(document) == {"version", "items", "lastUpdated"}
    stored = document["items"][0]
    assert stored["fileName"] == "capabilities.txt"
    assert stored["originalTextEmbedding"] == [0.6, 0.8]
    assert {"id", "text", "embedding", "startIndex", "endIndex"} <= set(stored["chunks"][0])


def test_missing_or_corrupt_file_loads_empty(tmp_path: Path):
    path = tmp_path / "knowledgebase.json"
    assert JsonFileKnowledgeStore(path).load().is_empty
    path.write_text("{not json", encoding="utf-8")
    assert JsonFileKnowledgeStore(path).load().is_empty
    path.write_text("", encoding="utf-8")
    assert JsonFileKnowledgeStore(path).load().is_empty
    path.write_bytes(b'{"version": "1.0", "items": [\xff\xfe]}')
    assert JsonFileKnowledgeStore(path).load().is_empty

    directory = tmp_path / "kb_dir"
    directory.mkdir()
    assert JsonFileKnowledgeStore(directory).load().is_empty


def test_upsert_replaces_same_file_name_case_insensitively(tmp_path: Path):
    store = JsonFileKnowledgeStore(tmp_path / "knowledgebase.json")
    store.upsert_by_file_name(_item("Capabilities.TXT", "Old text."))
    store.upsert_by_file_name(_item("other.txt"))
    replacement = _item("capabilities.txt", "New text.")
    store.upsert_by_file_name(replacement)

    items = store.load().items
    assert [item.file_name for item in items] == ["other.txt", "capabilities.txt"]
    assert items[-1].original_text == "New text."


def test_remove_and_clear(tmp_path: Path):
    store = JsonFileKnowledgeStore(tmp_path / "knowledgebase.json")
    first, second = _item("a.txt"), _item("b.txt")
    store.upsert_by_file_name(first)
    store.upsert_by_file_name(second)

    assert store.remove_by_id(first.id) is True
    assert store.remove_by_id(first.id) is False
    assert [item.id for item in store.load().items] == [second.id]

    store.clear()
    assert store.load().is_empty
    assert not store.path.exists()


def test_in_memory_store_returns_copies():
    store = InMemoryKnowledgeStore()
    store.upsert_by_file_name(_item("a.txt"))
    loaded = store.load()
    loaded.items.clear()
    assert len(store.load().items) == 1
    store.clear()
    assert store.load().is_empty
