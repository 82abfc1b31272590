"""
Tests for the monthly dashboard query and application wiring.
"""

import pytest
from decimal import Decimal

from spendly.ledger import EmiPaymentEngine, LedgerStore, SettlementEngine
from spendly.models import NewTransaction, Share
from spendly.orchestrator import LedgerServices, create_app_components, create_table_store
from spendly.queries import AnalyticsAggregator, DashboardQuery
from spendly.services.storage import BUDGETS, InMemoryTableStore, TransportError


class TestDashboardQuery:
    """Tests for the budget card and its rows."""

    def test_split_dinner_scenario(self, run, ledger, dashboard, user_id, period, split):
        """Test budget 10000 with a 1000 dinner where Asha owes 400."""
        run(ledger.upsert_budget(user_id, Decimal("10000"), period))

        board = run(dashboard.load(user_id, period)).unwrap()
        summary = board.summary

        assert summary.total_spent == Decimal("1000")
        assert summary.pending_total == Decimal("400")
        assert summary.remaining == Decimal("9000")
        assert summary.after_debts == Decimal("9400")
        assert len(board.transactions) == 1
        assert len(board.pending_debts) == 1

    def test_after_settling(self, run, ledger, settlements, dashboard, user_id, period, split):
        """Test that collecting the debt moves it from pending into remaining."""
        run(ledger.upsert_budget(user_id, Decimal("10000"), period))
        run(settlements.settle_one(user_id, split.debts[0].id, period)).unwrap()

        summary = run(dashboard.load(user_id, period)).unwrap().summary

        assert summary.total_spent == Decimal("600")
        assert summary.pending_total == Decimal("0")
        assert summary.remaining == Decimal("9400")
        assert summary.after_debts == Decimal("9400")

    def test_pending_debts_from_any_month(self, run, ledger, dashboard, user_id, period, split):
        """Test that older pending debts still count as owed."""
        board = run(dashboard.load(user_id, period.shift(1))).unwrap()

        assert board.transactions == []
        assert board.summary.total_spent == Decimal("0")
        assert board.summary.pending_total == Decimal("400")

    def test_winnings_and_emis(self, run, ledger, emis, dashboard, user_id, period):
        """Test winnings in the budget and EMI progress rows."""
        run(ledger.upsert_budget(user_id, Decimal("5000"), period))
        run(ledger.add_winning(user_id, "Bonus", Decimal("1000"), period))
        emi = run(ledger.add_emi(user_id, "Laptop", Decimal("2000"), 4, period)).unwrap()
        run(emis.pay_month(user_id, emi.id, period)).unwrap()

        board = run(dashboard.load(user_id, period)).unwrap()

        assert board.summary.effective_budget == Decimal("6000")
        assert board.summary.total_spent == Decimal("2000")
        assert board.summary.emi_paid == Decimal("2000")
        assert board.summary.remaining == Decimal("4000")
        assert len(board.emi_progress) == 1
        assert board.emi_progress[0].paid_months == 1
        assert board.emi_progress[0].total_left == Decimal("6000")
        assert board.emi_progress[0].paid_this_period

    def test_manual_expense(self, run, ledger, dashboard, user_id, period):
        """Test a plain expense with no budget set."""
        run(ledger.add_transaction(
            user_id,
            NewTransaction(title="Coffee", total_amount=Decimal("150"), my_amount=Decimal("150")),
            period,
        ))

        summary = run(dashboard.load(user_id, period)).unwrap().summary
        assert summary.total_spent == Decimal("150")
        assert summary.percent_used == 0.0

    def test_read_failure(self, run, dashboard, store, user_id, period):
        """Test that a failed read fails the dashboard."""
        store.fail("select", BUDGETS)

        result = run(dashboard.load(user_id, period))
        assert isinstance(result.error, TransportError)


class TestOrchestrator:
    """Tests for component wiring."""

    def test_components_share_one_store(self, now):
        """Test that every component is built over the given store."""
        store = InMemoryTableStore()
        services = create_app_components(store=store, clock=lambda: now)

        assert isinstance(services, LedgerServices)
        assert services.store is store
        assert services.ledger.table_store is store
        assert isinstance(services.ledger, LedgerStore)
        assert isinstance(services.settlements, SettlementEngine)
        assert isinstance(services.emis, EmiPaymentEngine)
        assert isinstance(services.dashboard, DashboardQuery)
        assert isinstance(services.analytics, AnalyticsAggregator)

    def test_memory_backend(self):
        """Test building the in-memory store by name."""
        assert isinstance(create_table_store("memory"), InMemoryTableStore)

    def test_unknown_backend(self):
        """Test that an unknown backend is refused."""
        with pytest.raises(ValueError):
            create_table_store("postgres")

    def test_end_to_end(self, run, now, user_id, period):
        """Test a split and a settle through the wired services."""
        services = create_app_components(store=InMemoryTableStore(), clock=lambda: now)
        friend = run(services.ledger.add_friend(user_id, "Ravi")).unwrap()

        run(services.settlements.create_split(
            user_id,
            NewTransaction(title="Tickets", total_amount=Decimal("900"), my_amount=Decimal("300")),
            [Share(friend_id=friend.id, amount=Decimal("600"))],
            period,
        )).unwrap()

        settlement = run(services.settlements.settle_all_for_friend(user_id, friend.id, period))
        assert settlement.unwrap().credit.my_amount == Decimal("-600")

        board = run(services.dashboard.load(user_id, period)).unwrap()
        assert board.summary.total_spent == Decimal("300")
