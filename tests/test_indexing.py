from __future__ import annotations

import pytest

from ragstore.exceptions import SchemaMismatchError
from ragstore.indexing.service import IndexManager
from ragstore.mapping.service import validate_knn_config


def _manager(backend, diagnostics, **kwargs):
    knn_options = {
        "similarity": kwargs.pop("similarity", "dot_product"),
        "knn_engine": kwargs.pop("knn_engine", "nmslib"),
        "index_type": kwargs.pop("index_type", "flat"),
        "embedding_dim": 4,
    }
    return IndexManager(
        backend,
        validate_knn_config(**knn_options),
        default_index="docs",
        diagnostics=diagnostics,
        **kwargs,
    )


def test_ensure_ready_creates_both_indices(backend, diagnostics):
    manager = _manager(backend, diagnostics)
    manager.ensure_ready("docs", "labels", create_if_missing=True)
    assert backend.indices["docs"]["mappings"]["properties"]["embedding"]["type"] == "knn_vector"
    assert backend.indices["labels"]["mappings"]["properties"]["is_correct_answer"] == {"type": "boolean"}


def test_ensure_ready_without_create_only_warns(backend, diagnostics):
    manager = _manager(backend, diagnostics)
    manager.ensure_ready("docs", "labels")
    assert backend.indices == {}
    assert diagnostics.named("index.missing")


def test_recreate_deletes_indices_and_warns_for_default(backend, diagnostics):
    manager = _manager(backend, diagnostics)
    manager.ensure_ready("docs", "labels", create_if_missing=True)
    backend.docs["docs"]["old"] = {"content": "stale"}

    manager.ensure_ready("docs", "labels", recreate=True)

    assert backend.docs["docs"] == {}
    assert "labels" in backend.indices
    assert [fields["index"] for fields in diagnostics.named("index.default_deleted")] == ["docs"]


def test_delete_missing_index_is_not_an_error(backend, diagnostics):
    _manager(backend, diagnostics).delete_index("nope")
    assert backend.indices == {}


def test_delete_index_removes_trained_ivf_model_first(backend, diagnostics):
    manager = _manager(backend, diagnostics, knn_engine="faiss", index_type="ivf")
    backend.models.append("docs-ivf")
    manager.create_document_index("docs")
    assert backend.indices["docs"]["mappings"]["properties"]["embedding"] == {
        "type": "knn_vector",
        "model_id": "docs-ivf",
    }

    manager.delete_index("docs")

    assert backend.deleted_models == ["docs-ivf"]
    assert "docs" not in backend.indices
    assert backend.models == []


def test_missing_search_field_is_added(backend, diagnostics):
    manager = _manager(backend, diagnostics, search_fields=("content", "title"))
    backend.create_index("docs", {"mappings": {"properties": {"content": {"type": "text"}}}})

    manager.validate_document_index("docs")

    added = [body["properties"] for _, body in backend.put_mappings]
    assert {"title": {"type": "text"}} in added
    assert any("embedding" in properties for properties in added)


def test_search_field_with_wrong_type_is_schema_mismatch(backend, diagnostics):
    manager = _manager(backend, diagnostics)
    backend.create_index("docs", {"mappings": {"properties": {"content": {"type": "keyword"}}}})
    with pytest.raises(SchemaMismatchError, match="recreate_index"):
        manager.validate_document_index("docs")


def test_embedding_field_with_wrong_type_is_schema_mismatch(backend, diagnostics):
    manager = _manager(backend, diagnostics)
    backend.create_index(
        "docs",
        {"mappings": {"properties": {"content": {"type": "text"}, "embedding": {"type": "float"}}}},
    )
    with pytest.raises(SchemaMismatchError, match="knn_vector"):
        manager.validate_document_index("docs")


def test_engine_mismatch_is_schema_mismatch(backend, diagnostics):
    _manager(backend, diagnostics, knn_engine="faiss").create_document_index("docs")
    with pytest.raises(SchemaMismatchError, match="knn_engine"):
        _manager(backend, diagnostics, knn_engine="nmslib").validate_document_index("docs")


def test_space_type_mismatch_is_schema_mismatch(backend, diagnostics):
    _manager(backend, diagnostics, similarity="l2").create_document_index("docs")
    with pytest.raises(SchemaMismatchError, match="space type"):
        _manager(backend, diagnostics, similarity="cosine").validate_document_index("docs")


def test_untrained_ivf_index_skips_engine_validation(backend, diagnostics):
    _manager(backend, diagnostics, knn_engine="nmslib").create_document_index("docs")
    manager = _manager(backend, diagnostics, knn_engine="faiss", index_type="ivf_pq")
    manager.validate_document_index("docs")


def test_custom_mapping_skips_validation(backend, diagnostics):
    custom = {"mappings": {"properties": {"content": {"type": "keyword"}}}}
    manager = _manager(backend, diagnostics, custom_mapping=custom)
    manager.ensure_ready("docs", "labels", create_if_missing=True)
    assert backend.indices["docs"]["mappings"] == custom["mappings"]
    assert diagnostics.named("index.validation_skipped")
