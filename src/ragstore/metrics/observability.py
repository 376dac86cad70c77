"""Observability helpers for ragstore."""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol

import structlog
from prometheus_client import Counter, Histogram

_logger_configured = False


def configure_logging(level: int | str = logging.INFO) -> None:
    global _logger_configured  # noqa: PLW0603 - module-level guard
    if _logger_configured:
        return
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger_configured = True


def get_logger(name: str = "ragstore") -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


class DiagnosticsSink(Protocol):
    """Receiver for non-fatal operational events (warnings, skips, detections)."""

    def emit(self, level: str, event: str, **fields: Any) -> None:
        """Record a structured event."""


class StructlogDiagnostics:
    """Default sink forwarding events to a structlog logger."""

    def __init__(self, name: str = "ragstore") -> None:
        self._logger = get_logger(name)

    def emit(self, level: str, event: str, **fields: Any) -> None:
        log = getattr(self._logger, level, self._logger.info)
        log(event, **fields)


class StoreMetrics:
    """Prometheus metrics for store I/O."""

    bulk_latency = Histogram(
        "ragstore_bulk_duration_seconds",
        "Time spent in a single bulk request.",
        buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
    )
    bulk_batch_size = Histogram(
        "ragstore_bulk_batch_size",
        "Actions sent per bulk request.",
        buckets=(1, 10, 100, 500, 1000, 5000, 10000),
    )
    scanned_hits = Counter(
        "ragstore_scanned_hits_total",
        "Hits yielded by full-index scans.",
        ["index"],
    )
    skipped_duplicates = Counter(
        "ragstore_skipped_duplicate_documents_total",
        "Documents dropped by the skip duplicate policy.",
    )

    @classmethod
    def observe_bulk(cls, duration_seconds: float, batch_size: int) -> None:
        cls.bulk_latency.observe(duration_seconds)
        cls.bulk_batch_size.observe(batch_size)

    @classmethod
    def observe_scan_hit(cls, index: str) -> None:
        cls.scanned_hits.labels(index=index).inc()

    @classmethod
    def observe_skipped(cls, count: int) -> None:
        if count:
            cls.skipped_duplicates.inc(count)


class TimedSection:
    """Context manager capturing elapsed time for metrics."""

    def __init__(self, callback) -> None:
        self._callback = callback
        self._start = 0.0

    def __enter__(self) -> "TimedSection":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        duration = time.perf_counter() - self._start
        self._callback(duration)


__all__ = [
    "DiagnosticsSink",
    "StoreMetrics",
    "StructlogDiagnostics",
    "TimedSection",
    "configure_logging",
    "get_logger",
]
