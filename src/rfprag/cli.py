"""Command-line interface for managing the knowledge base and answering RFPs."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Sequence

from rfprag.config import Settings, get_settings
from rfprag.detection import QuestionDetector
from rfprag.embeddings import build_embedding_backend
from rfprag.errors import EmptyKnowledgebaseError, RfpRagError
from rfprag.export import to_csv, to_json
from rfprag.ingestion import KnowledgebaseIngestor, LangChainTextExtractor, TextChunker
from rfprag.knowledge import JsonFileKnowledgeStore, KnowledgeStore
from rfprag.models import ProcessingStatus, ProgressEvent
from rfprag.services.pipeline import ProcessingCoordinator, build_coordinator, ensure_knowledgebase_ready

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_EMPTY_KNOWLEDGEBASE = 2


def _print_progress(event: ProgressEvent) -> None:
    print(f"[{event.percentage:3d}%] {event.status.value}: {event.message}", file=sys.stderr)


def cmd_kb_add(args: argparse.Namespace, settings: Settings, store: KnowledgeStore) -> int:
    ingestor = KnowledgebaseIngestor(
        LangChainTextExtractor(),
        build_embedding_backend(settings),
        TextChunker(settings.chunk_size),
    )
    for path in args.paths:
        try:
            item = ingestor.ingest(path.read_bytes(), file_name=path.name)
        except (OSError, RfpRagError) as exc:
            print(f"Failed to add {path}: {exc}", file=sys.stderr)
            return EXIT_FAILED
        store.upsert_by_file_name(item)
        print(f"Added {item.file_name} ({len(item.chunks)} chunks) as {item.id}")
    return EXIT_OK


def cmd_kb_list(args: argparse.Namespace, settings: Settings, store: KnowledgeStore) -> int:
    knowledgebase = store.load()
    if args.json:
        rows = [
            {"id": item.id, "fileName": item.file_name, "chunks": len(item.chunks), "createdAt": item.created_at.isoformat()}
            for item in knowledgebase.items
        ]
        print(json.dumps(rows, indent=2))
        return EXIT_OK
    if knowledgebase.is_empty:
        print("Knowledgebase is empty.")
        return EXIT_OK
    for item in knowledgebase.items:
        print(f"{item.id}  {item.file_name}  ({len(item.chunks)} chunks)")
    return EXIT_OK


def cmd_kb_remove(args: argparse.Namespace, settings: Settings, store: KnowledgeStore) -> int:
    if store.remove_by_id(args.item_id):
        print(f"Removed {args.item_id}")
        return EXIT_OK
    print(f"No knowledgebase item with id {args.item_id}", file=sys.stderr)
    return EXIT_FAILED


def cmd_kb_clear(args: argparse.Namespace, settings: Settings, store: KnowledgeStore) -> int:
    store.clear()
    print("Knowledgebase cleared.")
    return EXIT_OK


def cmd_detect(args: argparse.Namespace, settings: Settings, store: KnowledgeStore) -> int:
    try:
        text = LangChainTextExtractor().extract(args.path.read_bytes(), file_name=args.path.name)
    except (OSError, RfpRagError) as exc:
        print(f"Failed to read {args.path}: {exc}", file=sys.stderr)
        return EXIT_FAILED
    for question in QuestionDetector().detect(text):
        print(question)
    return EXIT_OK


def cmd_process(
    args: argparse.Namespace,
    settings: Settings,
    store: KnowledgeStore,
    coordinator: ProcessingCoordinator | None = None,
) -> int:
    try:
        knowledgebase = ensure_knowledgebase_ready(store.load())
    except EmptyKnowledgebaseError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_EMPTY_KNOWLEDGEBASE
    try:
        data = args.path.read_bytes()
    except OSError as exc:
        print(f"Failed to read {args.path}: {exc}", file=sys.stderr)
        return EXIT_FAILED

    coordinator = coordinator or build_coordinator(settings)
    result = coordinator.process(data, args.path.name, knowledgebase, None if args.quiet else _print_progress)

    if args.json_out:
        args.json_out.write_text(to_json(result), encoding="utf-8")
    if args.csv_out:
        args.csv_out.write_text(to_csv(result), encoding="utf-8")
    if not args.json_out and not args.csv_out:
        print(to_json(result))

    if result.processing_status is not ProcessingStatus.COMPLETED:
        print(f"Processing failed: {result.error_message}", file=sys.stderr)
        return EXIT_FAILED
    print(f"Answered {len(result.questions)} questions from {result.file_name}", file=sys.stderr)
    return EXIT_OK


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="rfprag", description="Answer RFP questions from a knowledge base.")
    parser.add_argument("--knowledgebase", type=Path, default=None, help="Override the knowledge base JSON path")
    commands = parser.add_subparsers(dest="command", required=True)

    kb = commands.add_parser("kb", help="Manage the knowledge base")
    kb_commands = kb.add_subparsers(dest="kb_command", required=True)
    add = kb_commands.add_parser("add", help="Add documents to the knowledge base")
    add.add_argument("paths", type=Path, nargs="+")
    add.set_defaults(handler=cmd_kb_add)
    listing = kb_commands.add_parser("list", help="List knowledge base documents")
    listing.add_argument("--json", action="store_true", help="Print as JSON")
    listing.set_defaults(handler=cmd_kb_list)
    remove = kb_commands.add_parser("remove", help="Remove a document by id")
    remove.add_argument("item_id")
    remove.set_defaults(handler=cmd_kb_remove)
    clear = kb_commands.add_parser("clear", help="Remove every document")
    clear.set_defaults(handler=cmd_kb_clear)

    detect = commands.add_parser("detect", help="Print the questions detected in a document")
    detect.add_argument("path", type=Path)
    detect.set_defaults(handler=cmd_detect)

    process = commands.add_parser("process", help="Answer the questions in an RFP")
    process.add_argument("path", type=Path)
    process.add_argument("--json-out", type=Path, default=None, help="Write the result as JSON")
    process.add_argument("--csv-out", type=Path, default=None, help="Write the questions and answers as CSV")
    process.add_argument("--quiet", action="store_true", help="Suppress progress output")
    process.set_defaults(handler=cmd_process)
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    settings = get_settings()
    store = JsonFileKnowledgeStore(args.knowledgebase or settings.knowledgebase_path)
    return args.handler(args, settings, store)


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())
