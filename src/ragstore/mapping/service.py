"""KNN vector-field mapping and index definitions for OpenSearch.

The embedding field mapping depends on three independent choices: the
similarity metric, the KNN engine and the index algorithm. The metric and
the engine together select the engine's *space type*; the algorithm decides
whether (and how) a ``method`` block is attached.

IVF indices go through two phases. Until a model has been trained for the
index the field is mapped as a plain ``knn_vector`` without a method block;
once ``<index>-ivf`` exists, the field references that model instead.
Training itself happens elsewhere.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from ragstore.exceptions import ConfigurationError

SIMILARITY_SPACE_TYPE_MAPPINGS: Mapping[str, Mapping[str, str]] = {
    "nmslib": {"cosine": "cosinesimil", "dot_product": "innerproduct", "l2": "l2"},
    "score_script": {"cosine": "cosinesimil", "dot_product": "innerproduct", "l2": "l2"},
    "faiss": {"cosine": "innerproduct", "dot_product": "innerproduct", "l2": "l2"},
}

VALID_SIMILARITIES = ("cosine", "dot_product", "l2")
VALID_KNN_ENGINES = ("nmslib", "faiss", "score_script")
VALID_INDEX_TYPES = ("flat", "hnsw", "ivf", "ivf_pq")
IVF_INDEX_TYPES = ("ivf", "ivf_pq")

# Fixed high-recall profile used for "flat" regardless of knn_parameters.
FLAT_EF_CONSTRUCTION = 512
FLAT_M = 16

DEFAULT_EF_CONSTRUCTION = 80
DEFAULT_M = 64
DEFAULT_EF_SEARCH = 20

# FAISS warns below 39 training points per centroid.
MIN_POINTS_PER_CLUSTER = 39
DEFAULT_NLIST = 4
DEFAULT_CODE_SIZE = 8
IVF_TRAIN_DIM_MULTIPLIER = 2

LABEL_DATE_FORMAT = "yyyy-MM-dd HH:mm:ss||yyyy-MM-dd||epoch_millis"


@dataclass(frozen=True)
class KnnConfig:
    """Validated vector-search configuration of a document index."""

    similarity: str = "dot_product"
    knn_engine: str = "nmslib"
    index_type: str = "flat"
    embedding_dim: int = 768
    knn_parameters: Mapping[str, int] = field(default_factory=dict)
    ivf_train_size: int | None = None

    @property
    def space_type(self) -> str:
        return resolve_space_type(self.similarity, self.knn_engine)

    @property
    def ef_search(self) -> int:
        return int(self.knn_parameters.get("ef_search", DEFAULT_EF_SEARCH))

    @property
    def is_ivf(self) -> bool:
        return self.index_type in IVF_INDEX_TYPES


def resolve_space_type(similarity: str, knn_engine: str) -> str:
    try:
        return SIMILARITY_SPACE_TYPE_MAPPINGS[knn_engine][similarity]
    except KeyError as exc:
        raise ConfigurationError(
            f"No space type for similarity '{similarity}' with knn_engine '{knn_engine}'."
        ) from exc


def recommended_ivf_train_size(
    index_type: str,
    embedding_dim: int,
    knn_parameters: Mapping[str, int] | None = None,
) -> int:
    """Minimum number of training vectors for an IVF model."""

    params = knn_parameters or {}
    n_clusters = int(params.get("nlist", DEFAULT_NLIST))
    floor = n_clusters * MIN_POINTS_PER_CLUSTER
    if index_type == "ivf_pq":
        code_size = int(params.get("code_size", DEFAULT_CODE_SIZE))
        floor = max(floor, 2**code_size * MIN_POINTS_PER_CLUSTER)
    return max(floor, IVF_TRAIN_DIM_MULTIPLIER * embedding_dim)


def validate_knn_config(
    *,
    similarity: str,
    knn_engine: str,
    index_type: str,
    embedding_dim: int,
    knn_parameters: Mapping[str, int] | None = None,
    ivf_train_size: int | None = None,
) -> KnnConfig:
    """Check every vector-search option eagerly and return the resolved config."""

    if similarity not in VALID_SIMILARITIES:
        raise ConfigurationError(
            f"Invalid value '{similarity}' for similarity, choose between 'cosine', 'l2' and 'dot_product'"
        )
    if knn_engine not in VALID_KNN_ENGINES:
        raise ConfigurationError(
            f"knn_engine must be either 'nmslib', 'faiss' or 'score_script' but was '{knn_engine}'"
        )
    if index_type not in VALID_INDEX_TYPES:
        raise ConfigurationError(
            f"Invalid value '{index_type}' for index_type. Choose one of: {', '.join(VALID_INDEX_TYPES)}."
        )
    if index_type in IVF_INDEX_TYPES and knn_engine != "faiss":
        raise ConfigurationError("Use 'faiss' as knn_engine when using 'ivf' or 'ivf_pq' as index_type.")
    if embedding_dim <= 0:
        raise ConfigurationError(f"embedding_dim must be a positive integer (got {embedding_dim})")
    if ivf_train_size is not None and ivf_train_size <= 0:
        raise ConfigurationError("ivf_train_size must be None or a positive integer.")

    params = dict(knn_parameters or {})
    if ivf_train_size is None and index_type in IVF_INDEX_TYPES:
        ivf_train_size = recommended_ivf_train_size(index_type, embedding_dim, params)

    # resolves eagerly so an unmapped pair fails here
    resolve_space_type(similarity, knn_engine)
    return KnnConfig(
        similarity=similarity,
        knn_engine=knn_engine,
        index_type=index_type,
        embedding_dim=embedding_dim,
        knn_parameters=params,
        ivf_train_size=ivf_train_size,
    )


def ivf_model_id(index: str) -> str:
    return f"{index}-ivf"


def build_embedding_field_mapping(
    config: KnnConfig,
    *,
    index: str,
    ivf_model_exists: bool = False,
) -> dict[str, Any]:
    """Return the ``knn_vector`` mapping of the embedding field."""

    mapping: dict[str, Any] = {"type": "knn_vector", "dimension": config.embedding_dim}
    if config.knn_engine == "score_script":
        return mapping

    method: dict[str, Any] = {"space_type": config.space_type, "engine": config.knn_engine}
    params = config.knn_parameters

    if config.index_type == "flat":
        method["name"] = "hnsw"
        method["parameters"] = {"ef_construction": FLAT_EF_CONSTRUCTION, "m": FLAT_M}
    elif config.index_type == "hnsw":
        method["name"] = "hnsw"
        method["parameters"] = {
            "ef_construction": int(params.get("ef_construction", DEFAULT_EF_CONSTRUCTION)),
            "m": int(params.get("m", DEFAULT_M)),
        }
        if config.knn_engine == "faiss":
            method["parameters"]["ef_search"] = config.ef_search
    elif config.index_type in IVF_INDEX_TYPES:
        if config.knn_engine != "faiss":
            raise ConfigurationError("To use 'ivf' or 'ivf_pq' as index_type, set knn_engine to 'faiss'.")
        if ivf_model_exists:
            return {"type": "knn_vector", "model_id": ivf_model_id(index)}
        return mapping
    else:
        raise ConfigurationError(f"Unsupported index_type '{config.index_type}'.")

    mapping["method"] = method
    return mapping


def text_field_mapping(synonyms: Sequence[str] | None = None) -> dict[str, str]:
    if synonyms:
        return {"type": "text", "analyzer": "synonym"}
    return {"type": "text"}


def build_document_index_definition(
    config: KnnConfig,
    *,
    index: str,
    search_fields: Sequence[str],
    content_field: str = "content",
    name_field: str = "name",
    embedding_field: str | None = "embedding",
    synonyms: Sequence[str] | None = None,
    synonym_type: str = "synonym",
    ivf_model_exists: bool = False,
) -> dict[str, Any]:
    """Full create-index body for a document index."""

    properties: dict[str, Any] = {
        name_field: {"type": "keyword"},
        content_field: text_field_mapping(synonyms),
    }
    for search_field in search_fields:
        properties[search_field] = text_field_mapping(synonyms)

    definition: dict[str, Any] = {
        "mappings": {
            "properties": properties,
            "dynamic_templates": [
                {
                    "strings": {
                        "path_match": "*",
                        "match_mapping_type": "string",
                        "mapping": {"type": "keyword"},
                    }
                }
            ],
        },
        "settings": {},
    }

    if synonyms:
        definition["settings"]["analysis"] = {
            "analyzer": {"synonym": {"tokenizer": "whitespace", "filter": ["lowercase", "synonym"]}},
            "filter": {"synonym": {"type": synonym_type, "synonyms": list(synonyms)}},
        }

    if embedding_field:
        index_settings: dict[str, Any] = {"knn": True}
        if config.knn_engine == "nmslib" and config.index_type == "hnsw":
            index_settings["knn.algo_param.ef_search"] = config.ef_search
        definition["settings"]["index"] = index_settings
        properties[embedding_field] = build_embedding_field_mapping(
            config, index=index, ivf_model_exists=ivf_model_exists
        )

    if not definition["settings"]:
        del definition["settings"]
    return definition


def build_label_index_definition() -> dict[str, Any]:
    return {
        "mappings": {
            "properties": {
                "query": {"type": "text"},
                "answer": {"type": "nested"},
                "document": {"type": "nested"},
                "is_correct_answer": {"type": "boolean"},
                "is_correct_document": {"type": "boolean"},
                "no_answer": {"type": "boolean"},
                "origin": {"type": "keyword"},
                "document_id": {"type": "keyword"},
                "pipeline_id": {"type": "keyword"},
                "created_at": {"type": "date", "format": LABEL_DATE_FORMAT},
                "updated_at": {"type": "date", "format": LABEL_DATE_FORMAT},
            }
        }
    }


__all__ = [
    "IVF_INDEX_TYPES",
    "KnnConfig",
    "SIMILARITY_SPACE_TYPE_MAPPINGS",
    "VALID_INDEX_TYPES",
    "VALID_KNN_ENGINES",
    "VALID_SIMILARITIES",
    "build_document_index_definition",
    "build_embedding_field_mapping",
    "build_label_index_definition",
    "ivf_model_id",
    "recommended_ivf_train_size",
    "resolve_space_type",
    "text_field_mapping",
    "validate_knn_config",
]
