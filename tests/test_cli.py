from __future__ import annotations

import io
import json

from ragstore.cli import parse_args, run_export
from ragstore.models import Document, Label


def test_parse_export_arguments():
    args = parse_args(["export", "--labels", "--batch-size", "5"])
    assert args.command == "export"
    assert args.labels is True
    assert args.batch_size == 5


def test_export_documents_as_json_lines(make_store):
    store = make_store()
    store.write_documents([Document(content="alpha", meta={"year": "2020"}), Document(content="beta")])

    out = io.StringIO()
    assert run_export(store, out) == 2

    records = [json.loads(line) for line in out.getvalue().splitlines()]
    assert {record["content"] for record in records} == {"alpha", "beta"}
    assert all(record["embedding"] is None for record in records)


def test_export_labels(make_store):
    store = make_store()
    document = Document(content="alpha")
    store.write_labels(
        [Label(query="what?", document=document, is_correct_answer=True, is_correct_document=True, origin="gold-label")]
    )

    out = io.StringIO()
    assert run_export(store, out, labels=True) == 1
    (record,) = [json.loads(line) for line in out.getvalue().splitlines()]
    assert record["query"] == "what?"
    assert record["document"]["id"] == document.id
