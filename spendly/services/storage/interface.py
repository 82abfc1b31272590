"""
Abstract Table Store Interface

DESIGN DECISION: The ledger talks to a remote tabular store through a
deliberately small interface: select / insert / update / upsert / delete
on named tables. This allows us to:
1. Swap Google Sheets for a hosted Postgres later
2. Use in-memory storage for testing
3. Keep ledger rules decoupled from the storage implementation

The interface is intentionally simple - we're not building a full ORM.
Filtering is exact-match equality, set membership (In) and, for the
analytics window only, a lower bound (Gte). There are no multi-statement
transactions: callers that need atomicity must compensate themselves.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional


# Table names
TRANSACTIONS = "transactions"
DEBTS = "debts"
FRIENDS = "friends"
TAGS = "tags"
TRANSACTION_TAGS = "transaction_tags"
BUDGETS = "budgets"
WINNINGS = "winnings"
EMIS = "emis"
EMI_PAYMENTS = "emi_payments"

# Column layout per table (order matters for sheet-backed stores)
TABLE_COLUMNS: dict[str, tuple[str, ...]] = {
    TRANSACTIONS: (
        "id", "user_id", "title", "total_amount", "my_amount", "category",
        "note", "date", "month", "year", "emi_id", "created_at",
    ),
    DEBTS: (
        "id", "user_id", "transaction_id", "friend_id", "amount",
        "is_settled", "settled_at", "created_at",
    ),
    FRIENDS: ("id", "user_id", "name", "email", "created_at"),
    TAGS: ("id", "user_id", "name", "color"),
    TRANSACTION_TAGS: ("transaction_id", "tag_id"),
    BUDGETS: ("id", "user_id", "month", "year", "amount"),
    WINNINGS: ("id", "user_id", "title", "amount", "month", "year", "created_at"),
    EMIS: (
        "id", "user_id", "title", "amount", "total_months", "start_month",
        "start_year", "is_active", "created_at",
    ),
    EMI_PAYMENTS: ("id", "user_id", "emi_id", "month", "year", "amount", "created_at"),
}

# Unique constraints the backend enforces
UNIQUE_KEYS: dict[str, tuple[str, ...]] = {
    BUDGETS: ("user_id", "month", "year"),
    EMI_PAYMENTS: ("emi_id", "month", "year"),
    TRANSACTION_TAGS: ("transaction_id", "tag_id"),
}


class In:
    """Filter value: column value must be one of these."""

    def __init__(self, values: Iterable[Any]):
        self.values = tuple(values)

    def __repr__(self) -> str:
        return f"In({list(self.values)!r})"


class Gte:
    """Filter value: column value must be >= this bound."""

    def __init__(self, value: Any):
        self.value = value

    def __repr__(self) -> str:
        return f"Gte({self.value!r})"


Filters = dict[str, Any]


def row_matches(row: dict[str, Any], filters: Optional[Filters], coerce=None) -> bool:
    """
    Check a row against a filter dict.

    Args:
        row: Stored row
        filters: column -> value, In(...) or Gte(...)
        coerce: Optional function applied to both sides before comparing
                (text-only backends compare encoded cells)
    """
    if not filters:
        return True
    coerce = coerce or (lambda v: v)
    for column, expected in filters.items():
        actual = row.get(column)
        if isinstance(expected, In):
            if coerce(actual) not in {coerce(v) for v in expected.values}:
                return False
        elif isinstance(expected, Gte):
            if actual is None or actual == "" or actual < expected.value:
                return False
        elif coerce(actual) != coerce(expected):
            return False
    return True


class TableStore(ABC):
    """
    Abstract interface for the remote tabular store.

    Any storage implementation (Google Sheets, Postgres, in-memory)
    must implement these methods. Every method is a single round trip;
    failures raise StorageError subclasses.
    """

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Read rows matching all filters.

        Args:
            table: Table name
            filters: column -> value / In / Gte
            order_by: Column to sort on
            descending: Sort direction

        Returns:
            Matching rows (possibly empty)

        Raises:
            TransportError: If the backend can't be reached
        """
        pass

    @abstractmethod
    async def insert(
        self,
        table: str,
        rows: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """
        Insert rows.

        Returns:
            The inserted rows

        Raises:
            ConflictError: If a row violates a unique key
            TransportError: If the backend can't be reached
        """
        pass

    @abstractmethod
    async def update(
        self,
        table: str,
        filters: Filters,
        patch: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """
        Apply a patch to every row matching the filters.

        Returns:
            The updated rows (empty if nothing matched)
        """
        pass

    @abstractmethod
    async def upsert(
        self,
        table: str,
        row: dict[str, Any],
        conflict_keys: tuple[str, ...],
    ) -> dict[str, Any]:
        """
        Insert a row, or update the existing row with the same conflict keys.

        The existing row keeps its id and created_at.

        Returns:
            The stored row
        """
        pass

    @abstractmethod
    async def delete(
        self,
        table: str,
        filters: Filters,
    ) -> int:
        """
        Delete every row matching the filters.

        Returns:
            Number of rows deleted
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConflictError(StorageError):
    """Attempted to insert a row that violates a unique key."""
    pass


class TransportError(StorageError):
    """Could not reach the storage backend."""
    pass
