"""
In-Memory Table Store

A process-local implementation of TableStore. It behaves like the remote
backend where the ledger depends on it (unique keys, upsert keeping the
existing id, copies in and out so callers never share row dicts) and is
used for tests and for running the ledger without credentials.
"""

import copy
from typing import Any, Optional

from spendly.services.storage.interface import (
    UNIQUE_KEYS,
    ConflictError,
    Filters,
    StorageError,
    TableStore,
    row_matches,
)


class InMemoryTableStore(TableStore):
    """Tables are lists of row dicts keyed by table name."""

    def __init__(self, unique_keys: Optional[dict[str, tuple[str, ...]]] = None):
        self._tables: dict[str, list[dict[str, Any]]] = {}
        self._unique_keys = UNIQUE_KEYS if unique_keys is None else unique_keys

    def rows(self, table: str) -> list[dict[str, Any]]:
        """Snapshot of a table (for inspection in tests)."""
        return copy.deepcopy(self._tables.get(table, []))

    def _table(self, table: str) -> list[dict[str, Any]]:
        return self._tables.setdefault(table, [])

    def _find_conflict(
        self,
        table: str,
        row: dict[str, Any],
        keys: tuple[str, ...],
    ) -> Optional[dict[str, Any]]:
        for existing in self._table(table):
            if all(existing.get(k) == row.get(k) for k in keys):
                return existing
        return None

    async def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        rows = [copy.deepcopy(r) for r in self._table(table) if row_matches(r, filters)]
        if order_by:
            try:
                # Stable sort; rows missing the column go last
                rows.sort(
                    key=lambda r: (r.get(order_by) is None, r.get(order_by)),
                    reverse=descending,
                )
            except TypeError as e:
                raise StorageError(f"Cannot order {table} by {order_by}: {e}")
        return rows

    async def insert(
        self,
        table: str,
        rows: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        keys = self._unique_keys.get(table)
        if keys:
            seen = set()
            for row in rows:
                marker = tuple(row.get(k) for k in keys)
                if marker in seen or self._find_conflict(table, row, keys):
                    raise ConflictError(f"Duplicate {table} row for {dict(zip(keys, marker))}")
                seen.add(marker)

        stored = [copy.deepcopy(row) for row in rows]
        self._table(table).extend(stored)
        return [copy.deepcopy(row) for row in stored]

    async def update(
        self,
        table: str,
        filters: Filters,
        patch: dict[str, Any],
    ) -> list[dict[str, Any]]:
        updated = []
        for row in self._table(table):
            if row_matches(row, filters):
                row.update(copy.deepcopy(patch))
                updated.append(copy.deepcopy(row))
        return updated

    async def upsert(
        self,
        table: str,
        row: dict[str, Any],
        conflict_keys: tuple[str, ...],
    ) -> dict[str, Any]:
        existing = self._find_conflict(table, row, conflict_keys)
        if existing is None:
            stored = copy.deepcopy(row)
            self._table(table).append(stored)
            return copy.deepcopy(stored)

        existing.update({k: copy.deepcopy(v) for k, v in row.items() if k not in ("id", "created_at")})
        return copy.deepcopy(existing)

    async def delete(
        self,
        table: str,
        filters: Filters,
    ) -> int:
        rows = self._table(table)
        keep = [r for r in rows if not row_matches(r, filters)]
        deleted = len(rows) - len(keep)
        self._tables[table] = keep
        return deleted
