"""Index lifecycle management."""

from .service import IndexManager

__all__ = ["IndexManager"]
