"""Translation of metadata filters into OpenSearch boolean filter clauses."""

from __future__ import annotations

from typing import Any, Mapping, Protocol

from ragstore.exceptions import ValidationError

RANGE_OPERATORS = {"$gt": "gt", "$gte": "gte", "$lt": "lt", "$lte": "lte"}


class FilterTranslator(Protocol):
    def translate(self, filters: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Return clauses for a ``bool.filter`` conjunction."""


class TermFilterTranslator:
    """Translate ``{field: value}`` filters.

    A scalar becomes a ``term`` clause, a list a ``terms`` clause and a
    mapping of ``$gt``/``$gte``/``$lt``/``$lte`` operators a ``range`` clause.
    All clauses are combined by conjunction.
    """

    def translate(self, filters: Mapping[str, Any]) -> list[dict[str, Any]]:
        clauses: list[dict[str, Any]] = []
        for field, value in filters.items():
            if isinstance(value, Mapping):
                bounds = {}
                for operator, bound in value.items():
                    if operator not in RANGE_OPERATORS:
                        raise ValidationError(f"Unsupported filter operator '{operator}' on field '{field}'")
                    bounds[RANGE_OPERATORS[operator]] = bound
                clauses.append({"range": {field: bounds}})
            elif isinstance(value, (list, tuple, set)):
                clauses.append({"terms": {field: list(value)}})
            else:
                clauses.append({"term": {field: value}})
        return clauses


__all__ = ["FilterTranslator", "TermFilterTranslator"]
