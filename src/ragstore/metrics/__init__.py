"""Logging, diagnostics and metrics."""

from .observability import (
    DiagnosticsSink,
    StoreMetrics,
    StructlogDiagnostics,
    TimedSection,
    configure_logging,
    get_logger,
)

__all__ = [
    "DiagnosticsSink",
    "StoreMetrics",
    "StructlogDiagnostics",
    "TimedSection",
    "configure_logging",
    "get_logger",
]
