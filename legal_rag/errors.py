"""Exception hierarchy for the legal RAG service.

Only the ingestion side raises these to its callers; the query path converts
upstream failures into fallbacks and never lets them escape.
"""
from typing import Any, Dict, Optional


class LegalRagError(Exception):
    """Base exception carrying a message and optional debugging context."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class IngestionError(LegalRagError):
    """Raised when a document cannot be chunked, embedded or stored."""


class DocumentNotFoundError(IngestionError):
    def __init__(self, document_id: Any) -> None:
        super().__init__(f"Document not found: {document_id}", {"document_id": document_id})


class EmptyDocumentError(IngestionError):
    def __init__(self, document_id: Any) -> None:
        super().__init__("Document has no content to process", {"document_id": document_id})


class EmbeddingError(LegalRagError):
    """Raised when the embedding service returns an unusable vector."""
