"""
Shared fixtures for the Spendly tests.

Test strategy:
1. Pure functions (calculator, aggregation) are tested directly
2. Engines run against the in-memory table store
3. Storage failures are injected with FlakyStore; no real backend calls
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from spendly.ledger import EmiPaymentEngine, LedgerStore, SettlementEngine
from spendly.models import NewTransaction, Period, Share
from spendly.queries import AnalyticsAggregator, DashboardQuery
from spendly.services.storage import InMemoryTableStore, TransportError


FIXED_NOW = datetime(2026, 3, 15, 10, 30, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


class FlakyStore(InMemoryTableStore):
    """In-memory store that fails chosen (operation, table) pairs."""

    def __init__(self):
        super().__init__()
        self.failures: set[tuple[str, str]] = set()

    def fail(self, operation: str, table: str) -> None:
        self.failures.add((operation, table))

    def heal(self) -> None:
        self.failures.clear()

    def _check(self, operation: str, table: str) -> None:
        if (operation, table) in self.failures:
            raise TransportError(f"{operation} on {table} unavailable")

    async def select(self, table, filters=None, order_by=None, descending=False):
        self._check("select", table)
        return await super().select(table, filters, order_by, descending)

    async def insert(self, table, rows):
        self._check("insert", table)
        return await super().insert(table, rows)

    async def update(self, table, filters, patch):
        self._check("update", table)
        return await super().update(table, filters, patch)

    async def upsert(self, table, row, conflict_keys):
        self._check("upsert", table)
        return await super().upsert(table, row, conflict_keys)

    async def delete(self, table, filters):
        self._check("delete", table)
        return await super().delete(table, filters)


@pytest.fixture
def run():
    """Drive a coroutine to completion."""
    return asyncio.run


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def ledger(store):
    return LedgerStore(store, fixed_clock)


@pytest.fixture
def settlements(ledger):
    return SettlementEngine(ledger, fixed_clock)


@pytest.fixture
def emis(ledger):
    return EmiPaymentEngine(ledger, fixed_clock)


@pytest.fixture
def dashboard(ledger):
    return DashboardQuery(ledger)


@pytest.fixture
def analytics(ledger):
    return AnalyticsAggregator(ledger)


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def period():
    return Period(month=3, year=2026)


@pytest.fixture
def friend(run, ledger, user_id):
    return run(ledger.add_friend(user_id, "Asha", "asha@example.com")).unwrap()


@pytest.fixture
def split(run, settlements, user_id, friend, period):
    """A 1000 dinner where Asha owes 400."""
    result = run(settlements.create_split(
        user_id,
        NewTransaction(title="Dinner", total_amount=Decimal("1000"), my_amount=Decimal("600")),
        [Share(friend_id=friend.id, amount=Decimal("400"))],
        period,
    ))
    return result.unwrap()
