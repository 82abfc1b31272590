"""
Analytics Aggregator

Read-only reporting over a trailing window of the ledger. Every figure
here is built from positive spend_of values, so split bills count in
full while a friend still owes and as the owner's share once settled.

The aggregation functions are pure and take already-loaded rows;
AnalyticsAggregator.load does the reading.
"""

from collections import OrderedDict
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from spendly.config import get_settings
from spendly.ledger.calculator import ZERO, debt_info_for, spend_of
from spendly.ledger.store import LedgerStore
from spendly.log import get_logger
from spendly.models.ledger import Budget, Debt, Period, Result, Tag, TransactionView
from spendly.models.reports import (
    AnalyticsSnapshot,
    AnalyzedTransaction,
    DayBreakdown,
    MonthSummary,
    TagMonthRow,
    TagTotal,
    TopLineStats,
)


def analyze(
    transactions: Iterable[TransactionView],
    debts: Iterable[Debt],
) -> list[AnalyzedTransaction]:
    """Attach debt status and spend to each transaction."""
    debts_by_txn: dict[UUID, list[Debt]] = {}
    for debt in debts:
        debts_by_txn.setdefault(debt.transaction_id, []).append(debt)

    analyzed = []
    for transaction in transactions:
        info = debt_info_for(debts_by_txn.get(transaction.id, []))
        analyzed.append(AnalyzedTransaction(
            transaction=transaction,
            debt_info=info,
            spend=spend_of(transaction, info),
        ))
    return analyzed


def group_by_month(
    analyzed: Iterable[AnalyzedTransaction],
    budgets: Iterable[Budget] = (),
) -> list[MonthSummary]:
    """
    Monthly totals in ascending month order, each with its budget.

    A month total adds up positive spend only: a collected debt or refund
    is listed under its month but never lowers that month.
    """
    budget_map = {(b.year, b.month): b.amount for b in budgets}
    months: dict[str, MonthSummary] = {}

    for item in analyzed:
        period = item.transaction.period
        summary = months.get(period.key)
        if summary is None:
            summary = months[period.key] = MonthSummary(
                key=period.key,
                year=period.year,
                month=period.month,
                budget=budget_map.get((period.year, period.month), ZERO),
            )
        summary.transactions.append(item)
        if item.spend > 0:
            summary.total += item.spend
        if item.debt_info.has_unsettled:
            summary.pending_amount += item.debt_info.unsettled_amount

    return [months[key] for key in sorted(months)]


def tag_breakdown(analyzed: Iterable[AnalyzedTransaction]) -> list[TagTotal]:
    """
    Spend per tag, largest first.

    Credits and zero-spend rows are skipped. Ties keep first-seen order.
    """
    totals: "OrderedDict[UUID, TagTotal]" = OrderedDict()
    for item in analyzed:
        if item.spend <= 0:
            continue
        for tag in item.transaction.tags:
            entry = totals.get(tag.id)
            if entry is None:
                entry = totals[tag.id] = TagTotal(tag=tag, total=ZERO, count=0)
            entry.total += item.spend
            entry.count += 1

    return sorted(totals.values(), key=lambda t: t.total, reverse=True)


def day_breakdown(analyzed: Iterable[AnalyzedTransaction]) -> DayBreakdown:
    """Spend per calendar day, normalised against the busiest day (at least 1)."""
    totals: dict[int, Decimal] = {}
    for item in analyzed:
        if item.spend <= 0:
            continue
        day = item.transaction.date.day
        totals[day] = totals.get(day, ZERO) + item.spend

    return DayBreakdown(
        totals=dict(sorted(totals.items())),
        max_value=max([*totals.values(), Decimal("1")]),
    )


def filter_by_tag(
    analyzed: Iterable[AnalyzedTransaction],
    tag_id: Optional[UUID],
) -> list[AnalyzedTransaction]:
    """Transactions carrying a tag (all of them when tag_id is None)."""
    items = list(analyzed)
    if tag_id is None:
        return items
    return [i for i in items if any(t.id == tag_id for t in i.transaction.tags)]


def top_line(snapshot: AnalyticsSnapshot) -> TopLineStats:
    """
    Headline numbers:
    - all-time spend (positive spends only)
    - monthly average over months with data
    - top tag and highest-spend month (earliest wins a tie)
    """
    all_time = sum((i.spend for i in snapshot.transactions if i.spend > 0), ZERO)

    average = ZERO
    if snapshot.months:
        average = sum((m.total for m in snapshot.months), ZERO) / len(snapshot.months)

    highest = None
    for summary in snapshot.months:
        if highest is None or summary.total > highest.total:
            highest = summary

    tags = tag_breakdown(snapshot.transactions)
    return TopLineStats(
        all_time_spend=all_time,
        monthly_average=average,
        top_tag=tags[0] if tags else None,
        highest_month=highest,
    )


def monthly_tag_matrix(snapshot: AnalyticsSnapshot, limit: int = 8) -> list[TagMonthRow]:
    """Spend per month for each of the top tags (all-time ranking)."""
    rows = []
    for entry in tag_breakdown(snapshot.transactions)[:limit]:
        totals = {}
        for summary in snapshot.months:
            month_entry = next(
                (t for t in tag_breakdown(summary.transactions) if t.tag.id == entry.tag.id),
                None,
            )
            totals[summary.key] = month_entry.total if month_entry else ZERO
        rows.append(TagMonthRow(tag=entry.tag, totals=totals))
    return rows


def build_snapshot(
    transactions: Iterable[TransactionView],
    debts: Iterable[Debt],
    budgets: Iterable[Budget] = (),
) -> AnalyticsSnapshot:
    analyzed = analyze(transactions, debts)

    tags: dict[UUID, Tag] = {}
    for item in analyzed:
        for tag in item.transaction.tags:
            tags.setdefault(tag.id, tag)

    return AnalyticsSnapshot(
        months=group_by_month(analyzed, budgets),
        tags=list(tags.values()),
        transactions=analyzed,
    )


class AnalyticsAggregator:
    """Loads the analytics window and builds a snapshot."""

    def __init__(self, ledger: LedgerStore):
        self._ledger = ledger
        self._settings = get_settings().ledger
        self._logger = get_logger(__name__)

    async def load(
        self,
        user_id: UUID,
        period: Period,
        window_years: Optional[int] = None,
    ) -> Result:
        """
        Read transactions with year >= period.year - window_years.

        Debt and budget lookups degrade to "none" on failure; only a
        failed transaction read fails the call.

        Returns:
            Result(AnalyticsSnapshot, None)
        """
        if window_years is None:
            window_years = self._settings.analytics_window_years
        since = period.year - window_years

        result = await self._ledger.get_transactions_since(user_id, since)
        if result.error:
            return result
        transactions = result.data
        if not transactions:
            return Result(AnalyticsSnapshot(), None)

        debts_result = await self._ledger.get_debts_for_transactions(
            user_id, [t.id for t in transactions]
        )
        if debts_result.error:
            self._logger.warning("debt_lookup_degraded", error=str(debts_result.error))
        budgets_result = await self._ledger.get_budgets_since(user_id, since)
        if budgets_result.error:
            self._logger.warning("budget_lookup_degraded", error=str(budgets_result.error))

        snapshot = build_snapshot(
            transactions,
            debts_result.data or [],
            budgets_result.data or [],
        )
        return Result(snapshot, None)
