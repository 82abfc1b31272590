"""Ledger package: store, engines and calculator."""

from spendly.ledger.calculator import (
    cash_flow_spent,
    debt_info_for,
    effective_budget,
    pending_total,
    spend_of,
    summarize_month,
)
from spendly.ledger.emi import EmiPaymentEngine, emi_progress
from spendly.ledger.errors import (
    CompensationError,
    LedgerError,
    NotFoundError,
    SettlementIncompleteError,
    ValidationError,
)
from spendly.ledger.saga import Saga, SagaStep
from spendly.ledger.settlement import SettlementEngine
from spendly.ledger.store import LedgerStore
from spendly.ledger.tags import TagJoinResolver

__all__ = [
    # Store
    "LedgerStore",
    "TagJoinResolver",
    # Engines
    "EmiPaymentEngine",
    "Saga",
    "SagaStep",
    "SettlementEngine",
    "emi_progress",
    # Calculator
    "cash_flow_spent",
    "debt_info_for",
    "effective_budget",
    "pending_total",
    "spend_of",
    "summarize_month",
    # Exceptions
    "CompensationError",
    "LedgerError",
    "NotFoundError",
    "SettlementIncompleteError",
    "ValidationError",
]
