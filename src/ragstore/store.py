"""OpenSearch document store: the public read/write contract."""

from __future__ import annotations

from typing import Any, Iterable, Iterator, List, Mapping

from ragstore.backends.base import SearchBackend
from ragstore.backends.opensearch import OpenSearchBackend
from ragstore.config import (
    Settings,
    get_settings,
    resolve_scan_options,
    resolve_write_options,
    validate_duplicate_policy,
)
from ragstore.indexing.service import IndexManager
from ragstore.ingestion.service import BulkWriter, DocumentInput, LabelInput
from ragstore.mapping.service import KnnConfig, validate_knn_config
from ragstore.metrics.observability import DiagnosticsSink, StructlogDiagnostics, configure_logging
from ragstore.models import Document, Label
from ragstore.retrieval.filters import FilterTranslator
from ragstore.retrieval.service import ScanRetriever


class OpenSearchDocumentStore:
    """Documents and labels persisted in OpenSearch.

    Options are validated before any network call. Construction then probes
    the cluster, and creates, recreates or validates the indices as
    configured. A store instance is meant for one caller at a time.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        backend: SearchBackend | None = None,
        diagnostics: DiagnosticsSink | None = None,
        filter_translator: FilterTranslator | None = None,
        **overrides: Any,
    ) -> None:
        if overrides:
            base = settings.model_dump() if settings is not None else {}
            settings = get_settings({**base, **overrides})
        self._settings = settings or get_settings()
        configure_logging(self._settings.log_level)

        self._knn = validate_knn_config(
            similarity=self._settings.similarity,
            knn_engine=self._settings.knn_engine,
            index_type=self._settings.index_type,
            embedding_dim=self._settings.embedding_dim,
            knn_parameters=self._settings.knn_parameters_dict,
            ivf_train_size=self._settings.ivf_train_size,
        )
        validate_duplicate_policy(self._settings.duplicate_documents)

        self._diagnostics = diagnostics or StructlogDiagnostics("ragstore.store")
        self._backend = backend or OpenSearchBackend.from_settings(self._settings, diagnostics=self._diagnostics)
        self._backend.probe(self._settings.index)

        embedding_field = self._settings.embedding_field or None
        self._indices = IndexManager(
            self._backend,
            self._knn,
            default_index=self._settings.index,
            search_fields=self._settings.search_fields,
            content_field=self._settings.content_field,
            name_field=self._settings.name_field,
            embedding_field=embedding_field,
            custom_mapping=self._settings.custom_mapping,
            synonyms=self._settings.synonyms,
            synonym_type=self._settings.synonym_type,
            diagnostics=self._diagnostics,
        )
        self._writer = BulkWriter(
            self._backend,
            self._indices,
            content_field=self._settings.content_field,
            embedding_field=embedding_field,
            diagnostics=self._diagnostics,
        )
        self._retriever = ScanRetriever(
            self._backend,
            self._knn,
            content_field=self._settings.content_field,
            name_field=self._settings.name_field,
            embedding_field=embedding_field,
            scroll=self._settings.scroll,
            translator=filter_translator,
        )

        self._indices.ensure_ready(
            self._settings.index,
            self._settings.label_index,
            create_if_missing=self._settings.create_index,
            recreate=self._settings.recreate_index,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def knn(self) -> KnnConfig:
        return self._knn

    @property
    def index(self) -> str:
        return self._settings.index

    @property
    def label_index(self) -> str:
        return self._settings.label_index

    @property
    def indices(self) -> IndexManager:
        return self._indices

    @property
    def retriever(self) -> ScanRetriever:
        return self._retriever

    def write_documents(
        self,
        documents: Iterable[DocumentInput],
        index: str | None = None,
        batch_size: int | None = None,
        duplicate_documents: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> int:
        options = resolve_write_options(
            self._settings,
            index=index,
            batch_size=batch_size,
            duplicate_documents=duplicate_documents,
            headers=dict(headers) if headers else None,
        )
        return self._writer.write_documents(documents, options)

    def write_labels(
        self,
        labels: Iterable[LabelInput],
        index: str | None = None,
        batch_size: int | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> int:
        options = resolve_write_options(
            self._settings,
            index=index,
            batch_size=batch_size,
            headers=dict(headers) if headers else None,
            default_index=self._settings.label_index,
        )
        return self._writer.write_labels(labels, options)

    def get_all_documents_generator(
        self,
        index: str | None = None,
        filters: Mapping[str, Any] | None = None,
        return_embedding: bool | None = None,
        batch_size: int | None = None,
        headers: Mapping[str, str] | None = None,
        only_documents_without_embedding: bool = False,
    ) -> Iterator[Document]:
        """Lazily yield documents; each call starts a fresh scan."""

        options = resolve_scan_options(
            self._settings,
            index=index,
            batch_size=batch_size,
            return_embedding=return_embedding,
            headers=dict(headers) if headers else None,
        )
        return self._retriever.iter_documents(
            options, filters, only_missing_embedding=only_documents_without_embedding
        )

    def get_all_documents(
        self,
        index: str | None = None,
        filters: Mapping[str, Any] | None = None,
        return_embedding: bool | None = None,
        batch_size: int | None = None,
        headers: Mapping[str, str] | None = None,
        only_documents_without_embedding: bool = False,
    ) -> List[Document]:
        return list(
            self.get_all_documents_generator(
                index=index,
                filters=filters,
                return_embedding=return_embedding,
                batch_size=batch_size,
                headers=headers,
                only_documents_without_embedding=only_documents_without_embedding,
            )
        )

    def get_all_labels(
        self,
        index: str | None = None,
        filters: Mapping[str, Any] | None = None,
        batch_size: int | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> List[Label]:
        options = resolve_scan_options(
            self._settings,
            index=index,
            batch_size=batch_size,
            headers=dict(headers) if headers else None,
            default_index=self._settings.label_index,
        )
        return list(self._retriever.iter_labels(options, filters))

    def get_document_count(self, index: str | None = None, headers: Mapping[str, str] | None = None) -> int:
        return self._backend.count(index or self._settings.index, headers=headers)

    def delete_index(self, index: str) -> None:
        self._indices.delete_index(index)


__all__ = ["OpenSearchDocumentStore"]
