"""
Derived Reporting Models

Read-only shapes produced by the calculator, the dashboard query and the
analytics aggregator. None of these are ever written to the store.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from spendly.models.ledger import (
    DebtView,
    EmiView,
    Period,
    Tag,
    TransactionView,
    Winning,
)


class DebtInfo(BaseModel):
    """Unsettled-debt status of one transaction."""

    has_unsettled: bool = False
    unsettled_amount: Decimal = Decimal("0")


class BudgetSummary(BaseModel):
    """
    The dashboard's budget card for one month.

    total_spent is the cash-flow figure: what physically left the
    owner's pocket, before friends pay back.
    """

    period: Period
    base_budget: Decimal
    winnings_total: Decimal
    effective_budget: Decimal
    total_spent: Decimal
    pending_total: Decimal
    remaining: Decimal
    after_debts: Decimal = Field(
        ...,
        description="What remaining becomes once all friends pay back"
    )
    percent_used: float = Field(..., ge=0.0, le=100.0)
    emi_paid: Decimal = Field(
        default=Decimal("0"),
        description="EMI payments recorded for this month (part of total_spent)"
    )

    @property
    def over_budget(self) -> bool:
        return self.remaining < 0


class EmiProgress(BaseModel):
    """Where an EMI stands."""

    emi_id: UUID
    paid_months: int = Field(..., ge=0)
    total_months: int = Field(..., gt=0)
    remaining_months: int = Field(..., ge=0)
    total_left: Decimal
    is_complete: bool
    paid_this_period: bool


class Dashboard(BaseModel):
    """Everything the monthly dashboard shows."""

    summary: BudgetSummary
    transactions: list[TransactionView] = Field(default_factory=list)
    pending_debts: list[DebtView] = Field(default_factory=list)
    winnings: list[Winning] = Field(default_factory=list)
    emis: list[EmiView] = Field(default_factory=list)
    emi_progress: list[EmiProgress] = Field(default_factory=list)


class AnalyzedTransaction(BaseModel):
    """A transaction enriched for analytics."""

    transaction: TransactionView
    debt_info: DebtInfo = Field(default_factory=DebtInfo)
    spend: Decimal


class MonthSummary(BaseModel):
    """One month of the analytics timeline."""

    key: str
    year: int
    month: int
    total: Decimal = Decimal("0")
    budget: Decimal = Decimal("0")
    pending_amount: Decimal = Field(
        default=Decimal("0"),
        description="Unsettled friend shares included in total"
    )
    transactions: list[AnalyzedTransaction] = Field(default_factory=list)

    @property
    def period(self) -> Period:
        return Period(month=self.month, year=self.year)

    @property
    def over_budget(self) -> bool:
        return self.budget > 0 and self.total > self.budget


class TagTotal(BaseModel):
    tag: Tag
    total: Decimal
    count: int


class DayBreakdown(BaseModel):
    """Per day-of-month spend, for the daily heatmap."""

    totals: dict[int, Decimal] = Field(default_factory=dict)
    max_value: Decimal = Decimal("1")

    def height(self, day: int) -> float:
        """Bar height for a day, normalised to the busiest day (0..1)."""
        return float(self.totals.get(day, Decimal("0")) / self.max_value)


class TopLineStats(BaseModel):
    all_time_spend: Decimal = Decimal("0")
    monthly_average: Decimal = Decimal("0")
    top_tag: Optional[TagTotal] = None
    highest_month: Optional[MonthSummary] = None


class TagMonthRow(BaseModel):
    """One row of the tag x month matrix."""

    tag: Tag
    totals: dict[str, Decimal] = Field(default_factory=dict)


class AnalyticsSnapshot(BaseModel):
    """All analytics inputs for a window, already grouped by month."""

    months: list[MonthSummary] = Field(default_factory=list)
    tags: list[Tag] = Field(default_factory=list)
    transactions: list[AnalyzedTransaction] = Field(default_factory=list)

    def month(self, period: Period) -> Optional[MonthSummary]:
        for summary in self.months:
            if summary.key == period.key:
                return summary
        return None
