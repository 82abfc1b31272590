"""
Storage Services Package

Provides the abstract table store interface and concrete implementations.
Google Sheets is the remote backend; the in-memory store backs tests and
credential-less local runs.
"""

from spendly.services.storage.interface import (
    BUDGETS,
    DEBTS,
    EMI_PAYMENTS,
    EMIS,
    FRIENDS,
    TABLE_COLUMNS,
    TAGS,
    TRANSACTION_TAGS,
    TRANSACTIONS,
    UNIQUE_KEYS,
    WINNINGS,
    ConflictError,
    Gte,
    In,
    NotFoundError,
    StorageError,
    TableStore,
    TransportError,
)
from spendly.services.storage.memory import InMemoryTableStore
from spendly.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsTableStore,
)

__all__ = [
    # Tables
    "BUDGETS",
    "DEBTS",
    "EMI_PAYMENTS",
    "EMIS",
    "FRIENDS",
    "TABLE_COLUMNS",
    "TAGS",
    "TRANSACTION_TAGS",
    "TRANSACTIONS",
    "UNIQUE_KEYS",
    "WINNINGS",
    # Interface
    "Gte",
    "In",
    "TableStore",
    # Exceptions
    "ConflictError",
    "NotFoundError",
    "StorageError",
    "TransportError",
    # Implementations
    "InMemoryTableStore",
    "GoogleSheetsClient",
    "GoogleSheetsTableStore",
]
