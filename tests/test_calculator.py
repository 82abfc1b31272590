"""
Tests for the budget and spend calculator.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from spendly.ledger.calculator import (
    cash_flow_spent,
    debt_info_for,
    effective_budget,
    emi_paid_in,
    pending_total,
    spend_of,
    summarize_month,
)
from spendly.models import (
    Budget,
    Debt,
    EmiPayment,
    EmiView,
    Period,
    Transaction,
    Winning,
)
from spendly.models.reports import DebtInfo


USER = uuid4()
MARCH = Period(month=3, year=2026)


def txn(total, mine) -> Transaction:
    return Transaction(
        user_id=USER,
        title="Entry",
        total_amount=Decimal(total),
        my_amount=Decimal(mine),
        date=date(2026, 3, 5),
        month=3,
        year=2026,
    )


def debt(amount, settled=False) -> Debt:
    return Debt(
        user_id=USER,
        transaction_id=uuid4(),
        friend_id=uuid4(),
        amount=Decimal(amount),
        is_settled=settled,
    )


class TestSpendOf:
    """Tests for analytics spend attribution."""

    def test_credit_reduces_spend(self):
        """Test that a collected debt counts negatively."""
        assert spend_of(txn("500", "-500"), DebtInfo()) == Decimal("-500")

    def test_unsettled_split_counts_in_full(self):
        """Test that the full amount counts while a friend owes."""
        info = debt_info_for([debt("300")])
        assert spend_of(txn("1000", "700"), info) == Decimal("1000")

    def test_settled_split_counts_my_share(self):
        """Test that only my share counts once everyone paid back."""
        info = debt_info_for([debt("300", settled=True)])
        assert spend_of(txn("1000", "700"), info) == Decimal("700")

    def test_plain_expense(self):
        """Test a transaction with no debts."""
        assert spend_of(txn("250", "250"), DebtInfo()) == Decimal("250")


class TestDebtInfo:
    """Tests for summarising a transaction's debts."""

    def test_mixed_debts(self):
        """Test that only unsettled debts are summed."""
        info = debt_info_for([debt("100"), debt("50", settled=True), debt("25")])
        assert info.has_unsettled
        assert info.unsettled_amount == Decimal("125")

    def test_no_debts(self):
        """Test the empty case."""
        info = debt_info_for([])
        assert not info.has_unsettled
        assert info.unsettled_amount == Decimal("0")


class TestCashFlow:
    """Tests for the dashboard spent figure."""

    def test_split_counts_full_total(self):
        """Test that what left the pocket is the total."""
        assert cash_flow_spent([txn("1000", "600")]) == Decimal("1000")

    def test_credits_net_out(self):
        """Test that collected money reduces spent."""
        assert cash_flow_spent([txn("1000", "600"), txn("400", "-400")]) == Decimal("600")

    def test_empty(self):
        """Test no transactions."""
        assert cash_flow_spent([]) == Decimal("0")


class TestBudgetHelpers:
    """Tests for effective budget, pending total and EMI totals."""

    def test_effective_budget_adds_winnings(self):
        """Test base plus winnings."""
        winnings = [
            Winning(user_id=USER, title="Bonus", amount=Decimal("2000"), month=3, year=2026),
            Winning(user_id=USER, title="Cashback", amount=Decimal("150"), month=3, year=2026),
        ]
        assert effective_budget(Decimal("10000"), winnings) == Decimal("12150")

    def test_pending_total_skips_settled(self):
        """Test that settled debts are not pending."""
        assert pending_total([debt("400"), debt("100", settled=True)]) == Decimal("400")

    def test_emi_paid_in_period(self):
        """Test summing EMI payments for one month."""
        emi_id = uuid4()
        emi = EmiView(
            id=emi_id,
            user_id=USER,
            title="Laptop",
            amount=Decimal("2500"),
            total_months=6,
            start_month=1,
            start_year=2026,
            payments=[
                EmiPayment(user_id=USER, emi_id=emi_id, month=m, year=2026, amount=Decimal("2500"))
                for m in (2, 3)
            ],
        )
        assert emi_paid_in([emi], MARCH) == Decimal("2500")
        assert emi_paid_in([emi], Period(month=4, year=2026)) == Decimal("0")


class TestSummarizeMonth:
    """Tests for the dashboard budget card."""

    def test_split_dinner_scenario(self):
        """Test budget 10000 with a 1000 bill where a friend owes 400."""
        budget = Budget(user_id=USER, month=3, year=2026, amount=Decimal("10000"))
        summary = summarize_month(MARCH, budget, [], [txn("1000", "600")], [debt("400")])

        assert summary.total_spent == Decimal("1000")
        assert summary.pending_total == Decimal("400")
        assert summary.remaining == Decimal("9000")
        assert summary.after_debts == Decimal("9400")
        assert summary.percent_used == 10.0
        assert not summary.over_budget

    def test_no_budget(self):
        """Test that percent is zero without a budget."""
        summary = summarize_month(MARCH, None, [], [txn("300", "300")], [])
        assert summary.base_budget == Decimal("0")
        assert summary.percent_used == 0.0
        assert summary.remaining == Decimal("-300")
        assert summary.over_budget

    def test_percent_capped(self):
        """Test that overspending caps the bar at 100."""
        budget = Budget(user_id=USER, month=3, year=2026, amount=Decimal("100"))
        summary = summarize_month(MARCH, budget, [], [txn("500", "500")], [])
        assert summary.percent_used == 100.0
        assert summary.remaining == Decimal("-400")

    def test_winnings_extend_budget(self):
        """Test winnings in the effective budget."""
        budget = Budget(user_id=USER, month=3, year=2026, amount=Decimal("1000"))
        winnings = [Winning(user_id=USER, title="Prize", amount=Decimal("500"), month=3, year=2026)]
        summary = summarize_month(MARCH, budget, winnings, [txn("300", "300")], [])

        assert summary.winnings_total == Decimal("500")
        assert summary.effective_budget == Decimal("1500")
        assert summary.remaining == Decimal("1200")
        assert summary.percent_used == 20.0

    def test_credit_only_month(self):
        """Test that a negative spent never makes percent negative."""
        budget = Budget(user_id=USER, month=3, year=2026, amount=Decimal("1000"))
        summary = summarize_month(MARCH, budget, [], [txn("200", "-200")], [])
        assert summary.total_spent == Decimal("-200")
        assert summary.percent_used == 0.0
        assert summary.remaining == Decimal("1200")
