"""
Domain-specific exception classes for the production sync engine.
"""


class ProductionSyncError(Exception):
    """Base exception class for the production sync engine."""


class StoreError(ProductionSyncError):
    """Raised when a document store read or batch commit fails."""


class InvalidWriteError(StoreError):
    """Raised for a batch write that cannot be applied (missing or duplicate document)."""


class DocumentNotFoundError(ProductionSyncError):
    """Raised when a required document does not exist."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"{collection}/{doc_id} not found")
        self.collection = collection
        self.doc_id = doc_id


class SceneNotFoundError(DocumentNotFoundError):
    """Raised when materializing a scene that does not exist."""
