from __future__ import annotations

import pytest

from ragstore.retrieval.scoring import normalize_score, raw_similarity_score, scale_to_unit_interval


def _lexical(raw):
    return normalize_score(raw, similarity="dot_product", knn_engine="nmslib")


def test_zero_or_missing_score_yields_no_score():
    assert _lexical(0) is None
    assert _lexical(None) is None


def test_lexical_squash_is_monotonic_and_bounded():
    scores = [_lexical(raw) for raw in (0.5, 1.0, 4.0, 16.0, 64.0)]
    assert scores == sorted(scores)
    assert len(set(scores)) == len(scores)
    assert all(0.5 < score <= 1.0 for score in scores)


def test_unscaled_lexical_score_passes_through():
    assert normalize_score(3.5, similarity="cosine", knn_engine="nmslib", scale_score=False) == 3.5


@pytest.mark.parametrize(
    ("raw", "similarity", "engine", "expected"),
    [
        (1.5, "dot_product", "nmslib", 0.5),
        (0.5, "dot_product", "faiss", -1.0),
        (0.5, "cosine", "nmslib", 0.0),
        (1.8, "cosine", "score_script", 0.8),
        (0.25, "l2", "nmslib", 3.0),
    ],
)
def test_raw_similarity_inverts_knn_scores(raw, similarity, engine, expected):
    assert raw_similarity_score(raw, similarity, engine) == pytest.approx(expected)


def test_unit_interval_endpoints():
    assert scale_to_unit_interval(1.0, "cosine") == 1.0
    assert scale_to_unit_interval(-1.0, "cosine") == 0.0
    assert scale_to_unit_interval(0.0, "dot_product") == 0.5
    assert scale_to_unit_interval(0.0, "l2") == 1.0
    assert scale_to_unit_interval(10.0, "l2") > scale_to_unit_interval(100.0, "l2")


def test_embedding_adapted_score_is_scaled():
    score = normalize_score(1.0, similarity="cosine", knn_engine="nmslib", adapt_score_for_embedding=True)
    assert score == pytest.approx(1.0)
