"""Search backends."""

from .base import SearchBackend
from .opensearch import OpenSearchBackend, create_client

__all__ = ["OpenSearchBackend", "SearchBackend", "create_client"]
