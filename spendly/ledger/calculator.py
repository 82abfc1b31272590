"""
Budget & Spend Calculator

Pure functions that turn ledger rows into the numbers people look at.

There are two different "how much did I spend" figures, and both are
needed:

1. cash_flow_spent (dashboard budget bar): what physically left the
   pocket. A split bill counts in full, because the owner paid all of
   it; credits (collected debts) count negatively.
2. spend_of (analytics): what the owner is actually out of pocket for.
   A split bill counts in full only while a friend still owes; once
   every share is settled it counts as the owner's share.

They answer different questions and must not be merged.
"""

from decimal import Decimal
from typing import Iterable, Optional

from spendly.models.ledger import (
    Budget,
    Debt,
    EmiView,
    Period,
    Transaction,
    Winning,
)
from spendly.models.reports import BudgetSummary, DebtInfo


ZERO = Decimal("0")


def debt_info_for(debts: Iterable[Debt]) -> DebtInfo:
    """Summarise the unsettled part of one transaction's debts."""
    unsettled = [debt.amount for debt in debts if not debt.is_settled]
    return DebtInfo(
        has_unsettled=bool(unsettled),
        unsettled_amount=sum(unsettled, ZERO),
    )


def spend_of(transaction: Transaction, debt_info: DebtInfo) -> Decimal:
    """
    Spend attributed to a transaction for analytics.

    - credit (my_amount < 0): my_amount, reducing aggregate spend
    - a friend still owes: total_amount, the owner fronted all of it
    - otherwise: my_amount
    """
    if transaction.my_amount < 0:
        return transaction.my_amount
    if debt_info.has_unsettled:
        return transaction.total_amount
    return transaction.my_amount


def cash_flow_of(transaction: Transaction) -> Decimal:
    """Money out (or, for credits, back in) for one transaction."""
    if transaction.my_amount < 0:
        return transaction.my_amount
    return transaction.total_amount


def cash_flow_spent(transactions: Iterable[Transaction]) -> Decimal:
    """Dashboard "spent": total paid out, net of collected credits."""
    return sum((cash_flow_of(t) for t in transactions), ZERO)


def effective_budget(base: Decimal, winnings: Iterable[Winning]) -> Decimal:
    """Base budget plus the month's winnings."""
    return base + sum((w.amount for w in winnings), ZERO)


def pending_total(debts: Iterable[Debt]) -> Decimal:
    """Sum of what friends still owe."""
    return sum((d.amount for d in debts if not d.is_settled), ZERO)


def emi_paid_in(emis: Iterable[EmiView], period: Period) -> Decimal:
    """EMI payments recorded for a month."""
    total = ZERO
    for emi in emis:
        for payment in emi.payments:
            if payment.period == period:
                total += payment.amount
    return total


def summarize_month(
    period: Period,
    budget: Optional[Budget],
    winnings: Iterable[Winning],
    transactions: Iterable[Transaction],
    pending_debts: Iterable[Debt],
    emis: Iterable[EmiView] = (),
) -> BudgetSummary:
    """
    The dashboard budget card.

    remaining = effective budget - cash-flow spent
    after_debts = remaining + everything friends still owe
    """
    winnings = list(winnings)
    base = budget.amount if budget else ZERO
    effective = effective_budget(base, winnings)
    spent = cash_flow_spent(transactions)
    pending = pending_total(pending_debts)
    remaining = effective - spent

    if effective > 0:
        percent = min(float(spent / effective * 100), 100.0)
    else:
        percent = 0.0

    return BudgetSummary(
        period=period,
        base_budget=base,
        winnings_total=effective - base,
        effective_budget=effective,
        total_spent=spent,
        pending_total=pending,
        remaining=remaining,
        after_debts=remaining + pending,
        percent_used=max(percent, 0.0),
        emi_paid=emi_paid_in(emis, period),
    )
