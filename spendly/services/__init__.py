"""Services package."""

from spendly.services.storage import (
    ConflictError,
    GoogleSheetsClient,
    GoogleSheetsTableStore,
    InMemoryTableStore,
    NotFoundError,
    StorageError,
    TableStore,
    TransportError,
)

__all__ = [
    # Storage services
    "ConflictError",
    "GoogleSheetsClient",
    "GoogleSheetsTableStore",
    "InMemoryTableStore",
    "NotFoundError",
    "StorageError",
    "TableStore",
    "TransportError",
]
