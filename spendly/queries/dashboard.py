"""
Dashboard Query

Loads one month of the ledger and computes the budget card. Nothing is
cached: every call re-reads the store.
"""

from uuid import UUID

from spendly.ledger.calculator import summarize_month
from spendly.ledger.emi import emi_progress
from spendly.ledger.store import LedgerStore
from spendly.models.ledger import Period, Result
from spendly.models.reports import Dashboard


class DashboardQuery:
    """The monthly dashboard for one user."""

    def __init__(self, ledger: LedgerStore):
        self._ledger = ledger

    async def load(self, user_id: UUID, period: Period) -> Result:
        """
        Returns:
            Result(Dashboard, None), or the first failed read's error
        """
        reads = [
            await self._ledger.get_budget(user_id, period),
            await self._ledger.get_transactions(user_id, period),
            await self._ledger.get_pending_debts(user_id),
            await self._ledger.get_winnings(user_id, period),
            await self._ledger.get_emis(user_id),
        ]
        for result in reads:
            if result.error:
                return Result(None, result.error)
        budget, transactions, pending, winnings, emis = (r.data for r in reads)

        summary = summarize_month(
            period,
            budget,
            winnings,
            transactions,
            pending,
            emis,
        )
        return Result(
            Dashboard(
                summary=summary,
                transactions=transactions,
                pending_debts=pending,
                winnings=winnings,
                emis=emis,
                emi_progress=[emi_progress(emi, period) for emi in emis],
            ),
            None,
        )
