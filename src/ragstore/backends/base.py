"""Capability set a search backend must provide to host a document store."""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Mapping, Protocol, Sequence


class SearchBackend(Protocol):
    """Wire-level operations used by the index manager, writer and scanner.

    Every method is a blocking network round trip. Implementations are used
    by one caller at a time.
    """

    def probe(self, index: str) -> None:
        """Check connectivity; a missing index is not an error."""

    def index_exists(self, index: str, *, headers: Mapping[str, str] | None = None) -> bool:
        """Return whether the index (or alias) exists."""

    def is_alias(self, name: str) -> bool:
        """Return whether ``name`` is an alias rather than a concrete index."""

    def get_index(
        self, index: str, *, headers: Mapping[str, str] | None = None
    ) -> Mapping[str, Mapping[str, Any]] | None:
        """Return ``{index_name: {"mappings": ..., "settings": ...}}`` or None when missing."""

    def create_index(
        self, index: str, body: Mapping[str, Any], *, headers: Mapping[str, str] | None = None
    ) -> None:
        """Create an index with the given definition."""

    def delete_index(self, index: str) -> None:
        """Delete an index; missing indices are ignored."""

    def put_mapping(
        self, index: str, body: Mapping[str, Any], *, headers: Mapping[str, str] | None = None
    ) -> None:
        """Add fields to an existing mapping."""

    def bulk(
        self,
        actions: Sequence[Mapping[str, Any]],
        *,
        refresh: str = "wait_for",
        headers: Mapping[str, str] | None = None,
    ) -> int:
        """Send one bulk request and return the number of successful actions."""

    def scan(
        self,
        index: str,
        body: Mapping[str, Any],
        *,
        size: int,
        scroll: str,
        headers: Mapping[str, str] | None = None,
    ) -> Iterator[dict[str, Any]]:
        """Yield every hit matching ``body`` by scrolling through the index."""

    def existing_ids(
        self, index: str, ids: Iterable[str], *, headers: Mapping[str, str] | None = None
    ) -> set[str]:
        """Return the subset of ``ids`` already stored in the index."""

    def count(self, index: str, *, headers: Mapping[str, str] | None = None) -> int:
        """Return the number of documents in the index."""

    def list_models(self) -> list[str]:
        """Return ids of trained KNN models known to the cluster."""

    def delete_model(self, model_id: str) -> None:
        """Delete a trained KNN model."""
