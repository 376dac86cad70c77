"""Index and vector-field mapping builders."""

from .service import (
    KnnConfig,
    build_document_index_definition,
    build_embedding_field_mapping,
    build_label_index_definition,
    ivf_model_id,
    recommended_ivf_train_size,
    resolve_space_type,
    validate_knn_config,
)

__all__ = [
    "KnnConfig",
    "build_document_index_definition",
    "build_embedding_field_mapping",
    "build_label_index_definition",
    "ivf_model_id",
    "recommended_ivf_train_size",
    "resolve_space_type",
    "validate_knn_config",
]
