"""
Data Models Package

This package contains all Pydantic models used by the Spendly ledger.
All data read from or written to the store must conform to these schemas.
"""

from spendly.models.ledger import (
    MONTH_ABBREVIATIONS,
    TITLE_MAX_LENGTH,
    Budget,
    Debt,
    DebtView,
    Emi,
    EmiPayment,
    EmiPaymentRecord,
    EmiView,
    Friend,
    NewTransaction,
    Period,
    Result,
    Settlement,
    Share,
    Tag,
    Transaction,
    TransactionTag,
    TransactionView,
    Winning,
    fit_title,
    utc_now,
)
from spendly.models.reports import (
    AnalyticsSnapshot,
    AnalyzedTransaction,
    BudgetSummary,
    Dashboard,
    DayBreakdown,
    DebtInfo,
    EmiProgress,
    MonthSummary,
    TagMonthRow,
    TagTotal,
    TopLineStats,
)

__all__ = [
    # Ledger models
    "MONTH_ABBREVIATIONS",
    "TITLE_MAX_LENGTH",
    "Budget",
    "Debt",
    "DebtView",
    "Emi",
    "EmiPayment",
    "EmiPaymentRecord",
    "EmiView",
    "Friend",
    "NewTransaction",
    "Period",
    "Result",
    "Settlement",
    "Share",
    "Tag",
    "Transaction",
    "TransactionTag",
    "TransactionView",
    "Winning",
    "fit_title",
    "utc_now",
    # Report models
    "AnalyticsSnapshot",
    "AnalyzedTransaction",
    "BudgetSummary",
    "Dashboard",
    "DayBreakdown",
    "DebtInfo",
    "EmiProgress",
    "MonthSummary",
    "TagMonthRow",
    "TagTotal",
    "TopLineStats",
]
