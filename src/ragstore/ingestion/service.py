"""Batched bulk writes of documents and labels."""

from __future__ import annotations

from collections import Counter
from typing import Any, Iterable, List, Mapping, Sequence

from ragstore.backends.base import SearchBackend
from ragstore.config import WriteOptions
from ragstore.exceptions import DuplicateDocumentError
from ragstore.indexing.service import IndexManager
from ragstore.metrics.observability import DiagnosticsSink, StoreMetrics, StructlogDiagnostics, TimedSection
from ragstore.models import Document, Label, document_from_dict, label_from_dict, now_timestamp

DocumentInput = Document | Mapping[str, Any]
LabelInput = Label | Mapping[str, Any]


def document_to_action(
    document: Document,
    *,
    index: str,
    op_type: str,
    content_field: str = "content",
    embedding_field: str | None = "embedding",
) -> dict[str, Any]:
    """Wire form of a document: ``_id`` key, no score, meta promoted to top level."""

    action: dict[str, Any] = {
        "_op_type": op_type,
        "_index": index,
        "_id": document.id,
        content_field: document.content,
        "content_type": document.content_type.value,
        "id_hash_keys": list(document.id_hash_keys),
    }
    if document.embedding is not None and embedding_field:
        action[embedding_field] = list(document.embedding)
    for key, value in document.meta.items():
        # reserved fields win over meta keys of the same name
        if value is not None and key not in action:
            action[key] = value
    return action


def label_to_action(label: Label, *, index: str) -> dict[str, Any]:
    body = label.to_dict()
    label_id = body.pop("id")
    action: dict[str, Any] = {"_op_type": "index", "_index": index, "_id": str(label_id)}
    action.update({key: value for key, value in body.items() if value is not None})
    return action


class BulkWriter:
    """Writes documents and labels in fixed-size bulk batches.

    Batches are flushed in input order and never outlive the call. A failing
    bulk request aborts the call; earlier batches stay written.
    """

    def __init__(
        self,
        backend: SearchBackend,
        indices: IndexManager,
        *,
        content_field: str = "content",
        embedding_field: str | None = "embedding",
        diagnostics: DiagnosticsSink | None = None,
    ) -> None:
        self._backend = backend
        self._indices = indices
        self._content_field = content_field
        self._embedding_field = embedding_field
        self._diagnostics = diagnostics or StructlogDiagnostics("ragstore.ingestion")

    def write_documents(self, documents: Iterable[DocumentInput], options: WriteOptions) -> int:
        """Persist documents under ``options.duplicate_documents``; returns the number sent."""

        self._indices.ensure_document_index(options.index, headers=options.headers)
        document_objects = [document_from_dict(document) for document in documents]
        document_objects = self._handle_duplicate_documents(document_objects, options)

        actions = (
            document_to_action(
                document,
                index=options.index,
                op_type=options.op_type,
                content_field=self._content_field,
                embedding_field=self._embedding_field,
            )
            for document in document_objects
        )
        return self._write_batches(actions, options)

    def write_labels(self, labels: Iterable[LabelInput], options: WriteOptions) -> int:
        """Persist labels; id collisions are reported but never block the write."""

        self._indices.ensure_label_index(options.index, headers=options.headers)
        label_objects = [label_from_dict(label) for label in labels]

        duplicate_ids = self._duplicate_label_ids(label_objects, options)
        if duplicate_ids:
            self._diagnostics.emit(
                "warning",
                "labels.duplicate_ids",
                index=options.index,
                ids=duplicate_ids,
                hint=(
                    "Inserting a Label whose id already exists overwrites the old Label. "
                    "Make sure Label.id identifies the answer annotation, not the question."
                ),
            )

        now = now_timestamp()
        actions = (label_to_action(label.with_timestamps(now), index=options.index) for label in label_objects)
        return self._write_batches(actions, options)

    def _handle_duplicate_documents(self, documents: List[Document], options: WriteOptions) -> List[Document]:
        if options.duplicate_documents == "overwrite" or not documents:
            return documents

        seen: set[str] = set()
        unique: List[Document] = []
        repeated: List[str] = []
        for document in documents:
            if document.id in seen:
                repeated.append(document.id)
                continue
            seen.add(document.id)
            unique.append(document)

        existing = self._existing_ids([document.id for document in unique], options)
        if options.duplicate_documents == "fail":
            offending = list(dict.fromkeys(repeated + [d.id for d in unique if d.id in existing]))
            if offending:
                raise DuplicateDocumentError(offending, options.index)
            return unique

        kept = [document for document in unique if document.id not in existing]
        skipped = len(documents) - len(kept)
        if skipped:
            StoreMetrics.observe_skipped(skipped)
            self._diagnostics.emit("info", "documents.duplicates_skipped", index=options.index, count=skipped)
        return kept

    def _duplicate_label_ids(self, labels: Sequence[Label], options: WriteOptions) -> List[str]:
        counts = Counter(label.id for label in labels)
        in_batch = [label_id for label_id, count in counts.items() if count > 1]
        stored = self._existing_ids(list(counts), options)
        return list(dict.fromkeys(in_batch + [label_id for label_id in counts if label_id in stored]))

    def _existing_ids(self, ids: Sequence[str], options: WriteOptions) -> set[str]:
        found: set[str] = set()
        for start in range(0, len(ids), options.batch_size):
            found |= self._backend.existing_ids(
                options.index, ids[start : start + options.batch_size], headers=options.headers
            )
        return found

    def _write_batches(self, actions: Iterable[dict[str, Any]], options: WriteOptions) -> int:
        batch: List[dict[str, Any]] = []
        written = 0
        for action in actions:
            batch.append(action)
            if len(batch) % options.batch_size == 0:
                written += self._flush(batch, options)
                batch = []
        if batch:
            written += self._flush(batch, options)
        return written

    def _flush(self, batch: List[dict[str, Any]], options: WriteOptions) -> int:
        # TODO: retry transient bulk failures with backoff once callers agree on partial-write semantics.
        with TimedSection(lambda duration: StoreMetrics.observe_bulk(duration, len(batch))):
            self._backend.bulk(batch, refresh=options.refresh, headers=options.headers)
        return len(batch)


__all__ = ["BulkWriter", "document_to_action", "label_to_action"]
