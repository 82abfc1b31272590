"""
Ledger Errors

Storage failures are reported with the storage exceptions
(NotFoundError, ConflictError, TransportError). The errors here cover
what the ledger itself decides: invalid input, and multi-step writes
that could not be completed or undone.
"""

from typing import Optional
from uuid import UUID

from spendly.services.storage.interface import NotFoundError


class LedgerError(Exception):
    """Base exception for ledger rule violations."""
    pass


class ValidationError(LedgerError):
    """Caller-supplied data violates a ledger invariant. Nothing was written."""
    pass


class CompensationError(LedgerError):
    """
    A step failed and undoing the earlier steps failed too.

    The store may now hold a partial write (e.g. an EMI payment without
    its transaction). primary is the step failure, secondary the first
    undo failure, failures every (step name, error) that could not be
    undone.
    """

    def __init__(
        self,
        message: str,
        primary: Exception,
        secondary: Exception,
        failures: Optional[list[tuple[str, Exception]]] = None,
    ):
        super().__init__(message)
        self.primary = primary
        self.secondary = secondary
        self.failures = failures or []


class SettlementIncompleteError(LedgerError):
    """
    Debts were marked settled but the reimbursement credit was not recorded.

    Settlement is not rolled back; the caller decides whether to
    re-record the credit.
    """

    def __init__(self, message: str, settled_debt_ids: list[UUID], cause: Exception):
        super().__init__(message)
        self.settled_debt_ids = settled_debt_ids
        self.cause = cause


__all__ = [
    "CompensationError",
    "LedgerError",
    "NotFoundError",
    "SettlementIncompleteError",
    "ValidationError",
]
