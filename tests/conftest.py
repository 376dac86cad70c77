from __future__ import annotations

import copy
from typing import Any, Iterable, Iterator, Mapping, Sequence

import pytest

from ragstore.config import get_settings
from ragstore.exceptions import BulkWriteError
from ragstore.store import OpenSearchDocumentStore


class RecordingDiagnostics:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    def emit(self, level: str, event: str, **fields: Any) -> None:
        self.events.append((level, event, fields))

    def named(self, event: str) -> list[dict[str, Any]]:
        return [fields for _, name, fields in self.events if name == event]


class FakeBackend:
    """In-memory stand-in for OpenSearch covering the store's capability set."""

    def __init__(self) -> None:
        self.indices: dict[str, dict[str, Any]] = {}
        self.docs: dict[str, dict[str, dict[str, Any]]] = {}
        self.models: list[str] = []
        self.bulk_calls: list[list[dict[str, Any]]] = []
        self.probed: list[str] = []
        self.put_mappings: list[tuple[str, dict[str, Any]]] = []
        self.deleted_models: list[str] = []
        self.scan_bodies: list[dict[str, Any]] = []

    def probe(self, index: str) -> None:
        self.probed.append(index)

    def index_exists(self, index: str, *, headers: Mapping[str, str] | None = None) -> bool:
        return index in self.indices

    def is_alias(self, name: str) -> bool:
        return False

    def get_index(self, index: str, *, headers: Mapping[str, str] | None = None):
        if index not in self.indices:
            return None
        return {index: copy.deepcopy(self.indices[index])}

    def create_index(self, index: str, body: Mapping[str, Any], *, headers=None) -> None:
        self.indices[index] = {
            "mappings": copy.deepcopy(dict(body.get("mappings", {}))),
            "settings": copy.deepcopy(dict(body.get("settings", {}))),
        }
        self.docs.setdefault(index, {})

    def delete_index(self, index: str) -> None:
        self.indices.pop(index, None)
        self.docs.pop(index, None)

    def put_mapping(self, index: str, body: Mapping[str, Any], *, headers=None) -> None:
        self.put_mappings.append((index, copy.deepcopy(dict(body))))
        properties = self.indices[index]["mappings"].setdefault("properties", {})
        properties.update(copy.deepcopy(dict(body.get("properties", {}))))

    def bulk(self, actions: Sequence[Mapping[str, Any]], *, refresh: str = "wait_for", headers=None) -> int:
        self.bulk_calls.append([dict(action) for action in actions])
        for action in actions:
            index = action["_index"]
            store = self.docs.setdefault(index, {})
            source = {key: copy.deepcopy(value) for key, value in action.items() if not key.startswith("_")}
            if action["_op_type"] == "create" and action["_id"] in store:
                raise BulkWriteError("version conflict", [action["_id"]])
            store[action["_id"]] = source
        return len(actions)

    def scan(self, index: str, body: Mapping[str, Any], *, size: int, scroll: str, headers=None) -> Iterator[dict]:
        self.scan_bodies.append(copy.deepcopy(dict(body)))
        excludes = set(body.get("_source", {}).get("excludes", []))
        query = body.get("query", {})
        must_not = query.get("bool", {}).get("must_not", [])
        filters = query.get("bool", {}).get("filter", [])
        for doc_id, source in list(self.docs.get(index, {}).items()):
            if any(clause["exists"]["field"] in source for clause in must_not):
                continue
            if not all(self._matches(clause, source) for clause in filters):
                continue
            visible = {key: copy.deepcopy(value) for key, value in source.items() if key not in excludes}
            yield {"_index": index, "_id": doc_id, "_score": None, "_source": visible}

    @staticmethod
    def _matches(clause: Mapping[str, Any], source: Mapping[str, Any]) -> bool:
        if "term" in clause:
            ((field, value),) = clause["term"].items()
            return source.get(field) == value
        if "terms" in clause:
            ((field, values),) = clause["terms"].items()
            return source.get(field) in values
        return True

    def existing_ids(self, index: str, ids: Iterable[str], *, headers=None) -> set[str]:
        stored = self.docs.get(index, {})
        return {doc_id for doc_id in ids if doc_id in stored}

    def count(self, index: str, *, headers=None) -> int:
        return len(self.docs.get(index, {}))

    def list_models(self) -> list[str]:
        return list(self.models)

    def delete_model(self, model_id: str) -> None:
        self.deleted_models.append(model_id)
        if model_id in self.models:
            self.models.remove(model_id)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def diagnostics() -> RecordingDiagnostics:
    return RecordingDiagnostics()


@pytest.fixture
def make_store(backend: FakeBackend, diagnostics: RecordingDiagnostics):
    def _make(**overrides: Any) -> OpenSearchDocumentStore:
        options = {"index": "docs-test", "label_index": "docs-test-labels", "create_index": True}
        options.update(overrides)
        return OpenSearchDocumentStore(get_settings(options), backend=backend, diagnostics=diagnostics)

    return _make
