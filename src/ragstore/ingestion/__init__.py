"""Bulk writes of documents and labels."""

from .service import BulkWriter, document_to_action, label_to_action

__all__ = ["BulkWriter", "document_to_action", "label_to_action"]
