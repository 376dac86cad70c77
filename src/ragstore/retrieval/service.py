"""Full-index scans and reconstruction of documents and labels from hits."""

from __future__ import annotations

from typing import Any, Iterator, Mapping, Sequence

from ragstore.backends.base import SearchBackend
from ragstore.config import DEFAULT_BATCH_SIZE, ScanOptions
from ragstore.exceptions import DocumentStoreError, ValidationError
from ragstore.mapping.service import KnnConfig
from ragstore.metrics.observability import StoreMetrics
from ragstore.models import Document, Label, document_from_dict, label_from_dict
from ragstore.retrieval.filters import FilterTranslator, TermFilterTranslator
from ragstore.retrieval.scoring import normalize_score


def build_scan_query(
    filters: Mapping[str, Any] | None = None,
    *,
    translator: FilterTranslator,
    only_missing_embedding: bool = False,
    embedding_field: str | None = "embedding",
    exclude_fields: Sequence[str] | None = None,
) -> dict[str, Any]:
    """Request body for a scan: filtered ``bool`` query or ``match_all``."""

    query: dict[str, Any] = {}
    if filters:
        query["bool"] = {"filter": translator.translate(filters)}
    if only_missing_embedding and embedding_field:
        query.setdefault("bool", {})["must_not"] = [{"exists": {"field": embedding_field}}]
    if not query:
        query = {"match_all": {}}

    body: dict[str, Any] = {"query": query}
    if exclude_fields:
        body["_source"] = {"excludes": list(exclude_fields)}
    return body


class HitStream:
    """Single-pass iterator over scan hits.

    The stream owns the backend scroll cursor. Once exhausted (or closed) it
    stays exhausted; a new scan starts again from the top of the index.
    """

    def __init__(self, hits: Iterator[dict[str, Any]], *, index: str) -> None:
        self._hits = iter(hits)
        self._index = index
        self._exhausted = False

    @property
    def index(self) -> str:
        return self._index

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def __iter__(self) -> "HitStream":
        return self

    def __next__(self) -> dict[str, Any]:
        if self._exhausted:
            raise StopIteration
        try:
            hit = next(self._hits)
        except StopIteration:
            self._exhausted = True
            raise
        StoreMetrics.observe_scan_hit(self._index)
        return hit

    def close(self) -> None:
        close = getattr(self._hits, "close", None)
        if close is not None:
            close()
        self._exhausted = True


class ScanRetriever:
    """Reads documents and labels back out of their indices."""

    def __init__(
        self,
        backend: SearchBackend,
        knn: KnnConfig,
        *,
        content_field: str = "content",
        name_field: str = "name",
        embedding_field: str | None = "embedding",
        scroll: str = "1d",
        translator: FilterTranslator | None = None,
    ) -> None:
        self._backend = backend
        self._knn = knn
        self._content_field = content_field
        self._name_field = name_field
        self._embedding_field = embedding_field
        self._scroll = scroll
        self._translator = translator or TermFilterTranslator()

    def scan(
        self,
        index: str,
        filters: Mapping[str, Any] | None = None,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        only_missing_embedding: bool = False,
        exclude_fields: Sequence[str] | None = None,
        scroll: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> HitStream:
        body = build_scan_query(
            filters,
            translator=self._translator,
            only_missing_embedding=only_missing_embedding,
            embedding_field=self._embedding_field,
            exclude_fields=exclude_fields,
        )
        hits = self._backend.scan(index, body, size=batch_size, scroll=scroll or self._scroll, headers=headers)
        return HitStream(hits, index=index)

    def iter_documents(
        self,
        options: ScanOptions,
        filters: Mapping[str, Any] | None = None,
        *,
        only_missing_embedding: bool = False,
    ) -> Iterator[Document]:
        excludes = None
        if not options.return_embedding and self._embedding_field:
            excludes = [self._embedding_field]
        stream = self.scan(
            options.index,
            filters,
            batch_size=options.batch_size,
            only_missing_embedding=only_missing_embedding,
            exclude_fields=excludes,
            scroll=options.scroll,
            headers=options.headers,
        )
        for hit in stream:
            yield self.hit_to_document(hit)

    def iter_labels(self, options: ScanOptions, filters: Mapping[str, Any] | None = None) -> Iterator[Label]:
        stream = self.scan(
            options.index,
            filters,
            batch_size=options.batch_size,
            scroll=options.scroll,
            headers=options.headers,
        )
        for hit in stream:
            yield self.hit_to_label(hit, index=options.index)

    def hit_to_document(
        self,
        hit: Mapping[str, Any],
        adapt_score_for_embedding: bool = False,
        scale_score: bool = True,
    ) -> Document:
        source: Mapping[str, Any] = hit.get("_source") or {}
        reserved = {self._content_field, "content_type", "id_hash_keys", self._embedding_field}
        meta = {key: value for key, value in source.items() if key not in reserved}

        name = meta.pop(self._name_field, None)
        if name is not None:
            meta["name"] = name
        highlight = hit.get("highlight")
        if highlight:
            meta["highlighted"] = highlight

        score = normalize_score(
            hit.get("_score"),
            similarity=self._knn.similarity,
            knn_engine=self._knn.knn_engine,
            adapt_score_for_embedding=adapt_score_for_embedding,
            scale_score=scale_score,
        )
        payload: dict[str, Any] = {
            "id": hit["_id"],
            "content": source.get(self._content_field),
            "content_type": source.get("content_type"),
            "id_hash_keys": source.get("id_hash_keys"),
            "meta": meta,
            "score": score,
        }
        if self._embedding_field and source.get(self._embedding_field) is not None:
            payload["embedding"] = source[self._embedding_field]
        return document_from_dict(payload)

    def hit_to_label(self, hit: Mapping[str, Any], *, index: str | None = None) -> Label:
        try:
            return label_from_dict({**(hit.get("_source") or {}), "id": hit["_id"]})
        except ValidationError as exc:
            raise DocumentStoreError(
                f"Failed to create labels from the content of index '{index}'. "
                "Are you sure this index contains labels?"
            ) from exc


__all__ = ["HitStream", "ScanRetriever", "build_scan_query"]
