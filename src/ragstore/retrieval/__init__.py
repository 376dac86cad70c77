"""Scan retrieval, filter translation and score normalisation."""

from .filters import FilterTranslator, TermFilterTranslator
from .scoring import normalize_score, raw_similarity_score, scale_to_unit_interval
from .service import HitStream, ScanRetriever, build_scan_query

__all__ = [
    "FilterTranslator",
    "HitStream",
    "ScanRetriever",
    "TermFilterTranslator",
    "build_scan_query",
    "normalize_score",
    "raw_similarity_score",
    "scale_to_unit_interval",
]
