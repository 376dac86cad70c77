"""Map raw OpenSearch relevance scores onto comparable scales."""

from __future__ import annotations

import math

from ragstore.mapping.service import resolve_space_type

# Lexical (BM25) scores rarely exceed ~30; dividing by 8 spreads them over the sigmoid.
LEXICAL_SCALE = 8.0
EMBEDDING_SCALE = 100.0


def sigmoid(value: float) -> float:
    if value >= 0:
        return 1.0 / (1.0 + math.exp(-value))
    exp = math.exp(value)
    return exp / (1.0 + exp)


def _clamp_unit(value: float) -> float:
    if value < 0.0:
        return 0.0
    if value > 1.0:
        return 1.0
    return value


def raw_similarity_score(score: float, similarity: str, knn_engine: str) -> float:
    """Invert the KNN plugin's score transform.

    Returns the similarity for cosine and dot product and the distance for l2.
    """

    if similarity == "l2":
        return 1.0 / score - 1.0
    if similarity == "cosine" and knn_engine == "score_script":
        return score - 1.0
    if resolve_space_type(similarity, knn_engine) == "cosinesimil":
        return 2.0 - 1.0 / score
    if score > 1.0:
        return score - 1.0
    return 1.0 - 1.0 / score


def scale_to_unit_interval(score: float, similarity: str) -> float:
    """Bound a similarity-space score to [0, 1]; l2 distances map inversely."""

    if similarity == "cosine":
        return _clamp_unit((score + 1.0) / 2.0)
    if similarity == "l2":
        return _clamp_unit(2.0 * (1.0 - sigmoid(max(score, 0.0) / EMBEDDING_SCALE)))
    return sigmoid(score / EMBEDDING_SCALE)


def normalize_score(
    raw: float | None,
    *,
    similarity: str,
    knn_engine: str,
    adapt_score_for_embedding: bool = False,
    scale_score: bool = True,
) -> float | None:
    if not raw:
        return None
    score = float(raw)
    if adapt_score_for_embedding:
        score = raw_similarity_score(score, similarity, knn_engine)
        if scale_score:
            score = scale_to_unit_interval(score, similarity)
    elif scale_score:
        score = sigmoid(score / LEXICAL_SCALE)
    return score


__all__ = ["normalize_score", "raw_similarity_score", "scale_to_unit_interval", "sigmoid"]
