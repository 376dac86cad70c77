"""Operator CLI: prepare indices and export stored documents or labels."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Iterable, Sequence, TextIO

from ragstore.config import Settings, get_settings
from ragstore.exceptions import DocumentStoreError
from ragstore.store import OpenSearchDocumentStore


def _write_lines(records: Iterable[dict[str, Any]], out: TextIO) -> int:
    count = 0
    for record in records:
        out.write(json.dumps(record, default=str) + "\n")
        count += 1
    return count


def run_init(settings: Settings, *, recreate: bool = False) -> OpenSearchDocumentStore:
    overrides = {"create_index": True, "recreate_index": recreate}
    return OpenSearchDocumentStore(settings, **overrides)


def run_export(
    store: OpenSearchDocumentStore,
    out: TextIO,
    *,
    index: str | None = None,
    labels: bool = False,
    return_embedding: bool = False,
    batch_size: int | None = None,
) -> int:
    if labels:
        return _write_lines((label.to_dict() for label in store.get_all_labels(index=index, batch_size=batch_size)), out)
    documents = store.get_all_documents_generator(
        index=index,
        return_embedding=return_embedding,
        batch_size=batch_size,
    )
    return _write_lines((document.to_dict() for document in documents), out)


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Manage a ragstore OpenSearch document store.")
    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="Create (or validate) the document and label indices")
    init.add_argument("--recreate", action="store_true", help="Delete and recreate both indices")

    export = sub.add_parser("export", help="Write stored documents or labels as JSON lines")
    export.add_argument("--index", type=str, default=None, help="Index to export (defaults to the configured one)")
    export.add_argument("--labels", action="store_true", help="Export labels instead of documents")
    export.add_argument("--return-embedding", action="store_true", help="Include embedding vectors")
    export.add_argument("--batch-size", type=int, default=None, help="Scroll page size")
    export.add_argument("--out", type=Path, default=None, help="Output file (defaults to stdout)")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    settings = get_settings()
    try:
        if args.command == "init":
            store = run_init(settings, recreate=args.recreate)
            print(f"Indices '{store.index}' and '{store.label_index}' are ready.")
            return 0

        store = OpenSearchDocumentStore(settings)
        if args.out:
            with args.out.open("w", encoding="utf-8") as handle:
                count = run_export(
                    store,
                    handle,
                    index=args.index,
                    labels=args.labels,
                    return_embedding=args.return_embedding,
                    batch_size=args.batch_size,
                )
        else:
            count = run_export(
                store,
                sys.stdout,
                index=args.index,
                labels=args.labels,
                return_embedding=args.return_embedding,
                batch_size=args.batch_size,
            )
        print(f"Exported {count} record(s).", file=sys.stderr)
        return 0
    except DocumentStoreError as exc:
        print(f"ragstore: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())
