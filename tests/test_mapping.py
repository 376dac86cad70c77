from __future__ import annotations

import pytest

from ragstore.exceptions import ConfigurationError
from ragstore.mapping.service import (
    build_document_index_definition,
    build_embedding_field_mapping,
    build_label_index_definition,
    recommended_ivf_train_size,
    resolve_space_type,
    validate_knn_config,
)


def _config(**kwargs):
    options = {"similarity": "dot_product", "knn_engine": "nmslib", "index_type": "flat", "embedding_dim": 8}
    options.update(kwargs)
    return validate_knn_config(**options)


@pytest.mark.parametrize(
    ("engine", "similarity", "space_type"),
    [
        ("nmslib", "cosine", "cosinesimil"),
        ("nmslib", "dot_product", "innerproduct"),
        ("nmslib", "l2", "l2"),
        ("score_script", "cosine", "cosinesimil"),
        ("faiss", "cosine", "innerproduct"),
        ("faiss", "l2", "l2"),
    ],
)
def test_space_type_lookup(engine: str, similarity: str, space_type: str):
    assert resolve_space_type(similarity, engine) == space_type


def test_unknown_space_type_combination_is_configuration_error():
    with pytest.raises(ConfigurationError):
        resolve_space_type("manhattan", "nmslib")


def test_ivf_requires_faiss():
    with pytest.raises(ConfigurationError, match="faiss"):
        _config(index_type="ivf", knn_engine="nmslib")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"similarity": "jaccard"},
        {"knn_engine": "lucene"},
        {"index_type": "pq"},
        {"index_type": "ivf", "knn_engine": "faiss", "ivf_train_size": -5},
    ],
)
def test_invalid_options_fail_fast(kwargs):
    with pytest.raises(ConfigurationError):
        _config(**kwargs)


def test_ivf_pq_without_trained_model_has_no_method_block():
    config = _config(similarity="l2", knn_engine="faiss", index_type="ivf_pq")
    mapping = build_embedding_field_mapping(config, index="docs", ivf_model_exists=False)
    assert mapping == {"type": "knn_vector", "dimension": 8}


def test_ivf_with_trained_model_references_model():
    config = _config(knn_engine="faiss", index_type="ivf")
    mapping = build_embedding_field_mapping(config, index="docs", ivf_model_exists=True)
    assert mapping == {"type": "knn_vector", "model_id": "docs-ivf"}


def test_flat_ignores_tuning_parameters():
    config = _config(knn_parameters={"ef_construction": 10, "m": 4})
    method = build_embedding_field_mapping(config, index="docs")["method"]
    assert method["name"] == "hnsw"
    assert method["parameters"] == {"ef_construction": 512, "m": 16}
    assert method["space_type"] == "innerproduct"


def test_hnsw_defaults_and_faiss_ef_search():
    nmslib = build_embedding_field_mapping(_config(index_type="hnsw"), index="docs")["method"]
    assert nmslib["parameters"] == {"ef_construction": 80, "m": 64}

    faiss = build_embedding_field_mapping(
        _config(index_type="hnsw", knn_engine="faiss", knn_parameters={"ef_search": 50}), index="docs"
    )["method"]
    assert faiss["parameters"] == {"ef_construction": 80, "m": 64, "ef_search": 50}


def test_score_script_never_adds_method():
    mapping = build_embedding_field_mapping(_config(knn_engine="score_script", index_type="hnsw"), index="docs")
    assert "method" not in mapping


def test_recommended_ivf_train_size():
    assert recommended_ivf_train_size("ivf", 8) == 4 * 39
    assert recommended_ivf_train_size("ivf", 768) == 2 * 768
    assert recommended_ivf_train_size("ivf_pq", 8) == 256 * 39
    assert _config(knn_engine="faiss", index_type="ivf").ivf_train_size == 156
    assert _config(knn_engine="faiss", index_type="ivf", ivf_train_size=1000).ivf_train_size == 1000


def test_document_index_definition_puts_ef_search_in_settings_for_nmslib_hnsw():
    definition = build_document_index_definition(
        _config(index_type="hnsw"), index="docs", search_fields=["content", "title"]
    )
    assert definition["settings"]["index"] == {"knn": True, "knn.algo_param.ef_search": 20}
    properties = definition["mappings"]["properties"]
    assert properties["title"] == {"type": "text"}
    assert properties["name"] == {"type": "keyword"}
    assert properties["embedding"]["type"] == "knn_vector"
    template = definition["mappings"]["dynamic_templates"][0]["strings"]
    assert template["mapping"] == {"type": "keyword"}


def test_document_index_definition_with_synonyms():
    definition = build_document_index_definition(
        _config(),
        index="docs",
        search_fields=["content"],
        synonyms=["car, automobile"],
        synonym_type="synonym_graph",
    )
    assert definition["mappings"]["properties"]["content"] == {"type": "text", "analyzer": "synonym"}
    analysis = definition["settings"]["analysis"]
    assert analysis["filter"]["synonym"] == {"type": "synonym_graph", "synonyms": ["car, automobile"]}


def test_label_index_definition():
    properties = build_label_index_definition()["mappings"]["properties"]
    assert properties["query"] == {"type": "text"}
    assert properties["answer"] == {"type": "nested"}
    assert properties["origin"] == {"type": "keyword"}
    assert properties["created_at"]["format"] == "yyyy-MM-dd HH:mm:ss||yyyy-MM-dd||epoch_millis"
