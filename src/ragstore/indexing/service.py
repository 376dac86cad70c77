"""Index lifecycle: creation, validation against configuration, deletion."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from ragstore.backends.base import SearchBackend
from ragstore.exceptions import SchemaMismatchError
from ragstore.mapping.service import (
    KnnConfig,
    build_document_index_definition,
    build_embedding_field_mapping,
    build_label_index_definition,
    ivf_model_id,
    text_field_mapping,
)
from ragstore.metrics.observability import DiagnosticsSink, StructlogDiagnostics


class IndexManager:
    """Keeps the document and label indices usable for the configured store."""

    def __init__(
        self,
        backend: SearchBackend,
        knn: KnnConfig,
        *,
        default_index: str,
        search_fields: Sequence[str] = ("content",),
        content_field: str = "content",
        name_field: str = "name",
        embedding_field: str | None = "embedding",
        custom_mapping: Mapping[str, Any] | None = None,
        synonyms: Sequence[str] | None = None,
        synonym_type: str = "synonym",
        diagnostics: DiagnosticsSink | None = None,
    ) -> None:
        self._backend = backend
        self._knn = knn
        self._default_index = default_index
        self._search_fields = tuple(search_fields)
        self._content_field = content_field
        self._name_field = name_field
        self._embedding_field = embedding_field
        self._custom_mapping = dict(custom_mapping) if custom_mapping else None
        self._synonyms = tuple(synonyms) if synonyms else None
        self._synonym_type = synonym_type
        self._diagnostics = diagnostics or StructlogDiagnostics("ragstore.indexing")

    def ensure_ready(
        self,
        index: str,
        label_index: str,
        *,
        create_if_missing: bool = False,
        recreate: bool = False,
    ) -> None:
        if recreate:
            self.delete_index(index)
            self.delete_index(label_index)

        if (create_if_missing or recreate) and not self._backend.index_exists(index):
            self.create_document_index(index)

        if self._custom_mapping:
            self._diagnostics.emit(
                "warning",
                "index.validation_skipped",
                index=index,
                reason="Cannot validate index for custom mappings. Skipping index validation.",
            )
        else:
            self.validate_document_index(index)

        if (create_if_missing or recreate) and not self._backend.index_exists(label_index):
            self.create_label_index(label_index)

    def ensure_document_index(self, index: str, *, headers: Mapping[str, str] | None = None) -> None:
        if not self._backend.index_exists(index, headers=headers):
            self.create_document_index(index, headers=headers)

    def ensure_label_index(self, index: str, *, headers: Mapping[str, str] | None = None) -> None:
        if not self._backend.index_exists(index, headers=headers):
            self.create_label_index(index, headers=headers)

    def document_index_definition(self, index: str) -> dict[str, Any]:
        if self._custom_mapping:
            return dict(self._custom_mapping)
        return build_document_index_definition(
            self._knn,
            index=index,
            search_fields=self._search_fields,
            content_field=self._content_field,
            name_field=self._name_field,
            embedding_field=self._embedding_field,
            synonyms=self._synonyms,
            synonym_type=self._synonym_type,
            ivf_model_exists=self._knn.is_ivf and self.ivf_model_exists(index),
        )

    def create_document_index(self, index: str, *, headers: Mapping[str, str] | None = None) -> None:
        self._backend.create_index(index, self.document_index_definition(index), headers=headers)
        self._diagnostics.emit("info", "index.created", index=index, kind="document")

    def create_label_index(self, index: str, *, headers: Mapping[str, str] | None = None) -> None:
        self._backend.create_index(index, build_label_index_definition(), headers=headers)
        self._diagnostics.emit("info", "index.created", index=index, kind="label")

    def ivf_model_exists(self, index: str) -> bool:
        return ivf_model_id(index) in self._backend.list_models()

    def delete_index(self, index: str) -> None:
        """Delete ``index`` and any trained IVF model that belongs to it."""

        if index == self._default_index:
            self._diagnostics.emit(
                "warning",
                "index.default_deleted",
                index=index,
                hint="Create a new store instance before using this index again.",
            )
        if not self._backend.index_exists(index):
            return

        deleted_models: set[str] = set()
        if self._embedding_field:
            for info in (self._backend.get_index(index) or {}).values():
                properties = info.get("mappings", {}).get("properties", {})
                model_id = properties.get(self._embedding_field, {}).get("model_id")
                if model_id and model_id not in deleted_models:
                    self._backend.delete_model(model_id)
                    deleted_models.add(model_id)
                    self._diagnostics.emit("info", "ivf.model_deleted", index=index, model_id=model_id)

        self._backend.delete_index(index)

        model_id = ivf_model_id(index)
        if model_id not in deleted_models and model_id in self._backend.list_models():
            self._backend.delete_model(model_id)
            self._diagnostics.emit("info", "ivf.model_deleted", index=index, model_id=model_id)
        self._diagnostics.emit("info", "index.deleted", index=index)

    def validate_document_index(self, index: str, *, headers: Mapping[str, str] | None = None) -> None:
        """Check an existing index against the configuration, adding missing fields."""

        indices = self._backend.get_index(index, headers=headers)
        if not indices:
            self._diagnostics.emit(
                "warning",
                "index.missing",
                index=index,
                hint=(
                    "Create the index with create_index=True or let write_documents() create it on demand. "
                    "Indices created on demand are not validated."
                ),
            )
            return

        for index_id, info in indices.items():
            mappings = info.get("mappings", {})
            properties = mappings.get("properties", {})
            index_settings = info.get("settings", {}).get("index", {})

            for search_field in self._search_fields:
                existing = properties.get(search_field)
                if existing is None:
                    self._backend.put_mapping(
                        index_id,
                        {"properties": {search_field: text_field_mapping(self._synonyms)}},
                        headers=headers,
                    )
                    self._diagnostics.emit("info", "index.field_added", index=index_id, field=search_field)
                elif existing.get("type") != "text":
                    raise SchemaMismatchError(
                        f"The index '{index_id}' needs the 'text' type for the search field '{search_field}' "
                        f"to run full text search, but got type '{existing.get('type')}'. "
                        "You can fix this issue in one of the following ways: "
                        " - Recreate the index by setting recreate_index=True (all data in the index is lost). "
                        " - Use another index name by setting index='my_index_name'. "
                        f" - Remove '{search_field}' from search_fields."
                    )

            if not self._embedding_field:
                continue
            existing_embedding = properties.get(self._embedding_field)
            if existing_embedding is None:
                mapping = build_embedding_field_mapping(
                    self._knn,
                    index=index_id,
                    ivf_model_exists=self._knn.is_ivf and self.ivf_model_exists(index_id),
                )
                self._backend.put_mapping(
                    index_id, {"properties": {self._embedding_field: mapping}}, headers=headers
                )
                self._diagnostics.emit("info", "index.field_added", index=index_id, field=self._embedding_field)
                continue

            if existing_embedding.get("type") != "knn_vector":
                raise SchemaMismatchError(
                    f"The index '{index_id}' needs the 'knn_vector' type for the embedding field "
                    f"'{self._embedding_field}' to run vector search, but got type "
                    f"'{existing_embedding.get('type')}'. You can fix it in one of these ways: "
                    " - Recreate the index by setting recreate_index=True (all data in the index is lost). "
                    " - Use another index name by setting index='my_index_name'. "
                    " - Use another embedding field name by setting embedding_field='my_embedding_field_name'."
                )

            training_required = self._knn.is_ivf and "model_id" not in existing_embedding
            if self._knn.knn_engine != "score_script" and not training_required:
                self._validate_approximate_knn(existing_embedding, index_settings, index_id)

    def _validate_approximate_knn(
        self,
        existing_embedding: Mapping[str, Any],
        index_settings: Mapping[str, Any],
        index_id: str,
    ) -> None:
        method = existing_embedding.get("method") or {}
        if "model_id" in existing_embedding:
            engine = "faiss"
        else:
            engine = method.get("engine", "nmslib")

        remedies = (
            f" - Create a new index by selecting a different index name, for example index='my_new_{self._knn.knn_engine}_index'.\n"
            " - Overwrite the existing index by setting recreate_index=True (all data in the index is lost).\n"
        )
        if engine != self._knn.knn_engine:
            raise SchemaMismatchError(
                f"Existing embedding field '{self._embedding_field}' of OpenSearch index '{index_id}' has "
                f"knn_engine '{engine}', but knn_engine was set to '{self._knn.knn_engine}'.\n"
                f"To switch knn_engine to '{self._knn.knn_engine}' consider one of these options:\n" + remedies
            )

        if method:
            space_type = method.get("space_type", "l2")
            if space_type != self._knn.space_type:
                raise SchemaMismatchError(
                    f"Existing embedding field '{self._embedding_field}' of OpenSearch index '{index_id}' has "
                    f"space type '{space_type}', but similarity '{self._knn.similarity}' requires "
                    f"'{self._knn.space_type}'.\nConsider one of these options:\n"
                    + remedies
                    + " - Set similarity to match the existing space type.\n"
                )

        if engine == "nmslib" and self._knn.index_type == "hnsw":
            algo_params = index_settings.get("knn.algo_param") or {}
            ef_search = algo_params.get("ef_search", index_settings.get("knn.algo_param.ef_search"))
            if ef_search is not None and int(ef_search) != self._knn.ef_search:
                self._diagnostics.emit(
                    "warning",
                    "index.ef_search_mismatch",
                    index=index_id,
                    existing=int(ef_search),
                    configured=self._knn.ef_search,
                )


__all__ = ["IndexManager"]
