"""Error taxonomy shared by every ragstore component."""

from __future__ import annotations

from typing import Any, Sequence


class DocumentStoreError(RuntimeError):
    """Base class for all document store failures."""


class ConfigurationError(DocumentStoreError, ValueError):
    """Raised when store options are invalid or mutually incompatible."""


class StoreConnectionError(DocumentStoreError, ConnectionError):
    """Raised when the search backend cannot be reached at bootstrap."""


class SchemaMismatchError(DocumentStoreError):
    """Raised when an existing index does not match the configured schema."""


class ValidationError(DocumentStoreError, ValueError):
    """Raised when a document, answer or label payload is malformed."""


class DuplicateDocumentError(DocumentStoreError):
    """Raised under the ``fail`` duplicate policy when ids already exist."""

    def __init__(self, ids: Sequence[str], index: str) -> None:
        self.ids = list(ids)
        self.index = index
        joined = ", ".join(self.ids)
        super().__init__(f"Document(s) with ids '{joined}' already exist in index '{index}'.")


class BulkWriteError(DocumentStoreError):
    """Raised when a bulk request fails; nothing is retried."""

    def __init__(self, message: str, errors: Sequence[Any] | None = None) -> None:
        self.errors = list(errors or [])
        super().__init__(message)


__all__ = [
    "BulkWriteError",
    "ConfigurationError",
    "DocumentStoreError",
    "DuplicateDocumentError",
    "SchemaMismatchError",
    "StoreConnectionError",
    "ValidationError",
]
