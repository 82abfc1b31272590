"""
Settlement Engine

Owns the life of a debt: created when an expense is split, settled when
the friend pays back. Settling is irreversible and always leaves a
trace in the ledger: a credit transaction (negative my_amount) for the
amount collected, attributed to the month the money came in.

FAILURE MODES:
- create_split: debts failing to insert removes the transaction again.
- settle: the settled flag is NOT rolled back if the credit fails to
  record. The caller gets SettlementIncompleteError naming the debts
  that are settled without a credit. A credit that would not validate
  is refused before any debt is touched.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional
from uuid import UUID

from pydantic import ValidationError as ModelValidationError

from spendly.config import get_settings
from spendly.ledger.errors import (
    LedgerError,
    NotFoundError,
    SettlementIncompleteError,
    ValidationError,
)
from spendly.ledger.saga import Saga, SagaStep
from spendly.ledger.store import LedgerStore
from spendly.log import create_correlation_id, get_logger
from spendly.models.ledger import (
    Debt,
    NewTransaction,
    Period,
    Result,
    Settlement,
    Share,
    Transaction,
    fit_title,
    utc_now,
)
from spendly.services.storage.interface import StorageError


class RecordTransactionStep(SagaStep):
    name = "record_transaction"

    def __init__(
        self,
        ledger: LedgerStore,
        user_id: UUID,
        new_txn: NewTransaction,
        period: Period,
        tag_ids: Iterable[UUID],
    ):
        self._ledger = ledger
        self._user_id = user_id
        self._new_txn = new_txn
        self._period = period
        self._tag_ids = list(tag_ids)
        self.transaction: Optional[Transaction] = None

    async def apply(self) -> Transaction:
        result = await self._ledger.add_transaction(
            self._user_id, self._new_txn, self._period, self._tag_ids
        )
        self.transaction = result.unwrap()
        return self.transaction

    async def compensate(self) -> None:
        (await self._ledger.delete_transaction(self.transaction.id)).unwrap()


class RecordDebtsStep(SagaStep):
    name = "record_debts"

    def __init__(
        self,
        ledger: LedgerStore,
        user_id: UUID,
        transaction_step: RecordTransactionStep,
        shares: list[Share],
    ):
        self._ledger = ledger
        self._user_id = user_id
        self._transaction_step = transaction_step
        self._shares = shares

    async def apply(self) -> list[Debt]:
        transaction = self._transaction_step.transaction
        debts = [
            Debt(
                user_id=self._user_id,
                transaction_id=transaction.id,
                friend_id=share.friend_id,
                amount=share.amount,
            )
            for share in self._shares
        ]
        return (await self._ledger.add_debts(debts)).unwrap()


class MarkSettledStep(SagaStep):
    """Flip pending debts to settled. Deliberately not undone on failure."""

    name = "mark_settled"
    compensable = False

    def __init__(self, ledger: LedgerStore, debt_ids: list[UUID], settled_at: datetime):
        self._ledger = ledger
        self._debt_ids = debt_ids
        self._settled_at = settled_at
        self.settled: list[Debt] = []

    async def apply(self) -> list[Debt]:
        result = await self._ledger.mark_debts_settled(self._debt_ids, self._settled_at)
        self.settled = result.unwrap()
        return self.settled


class RecordCreditStep(SagaStep):
    """Record money collected for whatever the previous step actually settled."""

    name = "record_credit"

    def __init__(
        self,
        ledger: LedgerStore,
        mark_step: MarkSettledStep,
        build_credit: Callable[[list[Debt]], Transaction],
    ):
        self._ledger = ledger
        self._mark_step = mark_step
        self._build_credit = build_credit
        self.credit: Optional[Transaction] = None

    async def apply(self) -> Optional[Transaction]:
        if not self._mark_step.settled:
            return None
        try:
            credit = self._build_credit(self._mark_step.settled)
        except ModelValidationError as e:
            raise ValidationError(f"Invalid credit transaction: {e}") from e
        self.credit = (await self._ledger.record_transaction(credit)).unwrap()
        return self.credit


class SettlementEngine:
    """
    Creates splits and settles debts.

    "Now" comes from the injected clock; which month a credit belongs to
    comes from the period argument.
    """

    def __init__(
        self,
        ledger: LedgerStore,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._ledger = ledger
        self._clock = clock or utc_now
        self._settings = get_settings().ledger

    def validate_split(self, new_txn: NewTransaction, shares: list[Share]) -> None:
        """
        Check that the owner's share plus every friend's share is the total.

        Raises:
            ValidationError: If the shares don't add up (within tolerance)
        """
        if new_txn.my_amount > new_txn.total_amount:
            raise ValidationError("Your share can't exceed the total amount")

        split_sum = sum((share.amount for share in shares), Decimal("0"))
        gap = abs(split_sum + new_txn.my_amount - new_txn.total_amount)
        if gap > self._settings.split_tolerance:
            raise ValidationError(
                f"Shares don't add up: {new_txn.my_amount} + {split_sum} "
                f"!= {new_txn.total_amount}"
            )

    async def create_split(
        self,
        user_id: UUID,
        new_txn: NewTransaction,
        shares: Iterable[Share],
        period: Period,
        tag_ids: Iterable[UUID] = (),
    ) -> Result:
        """
        Record an expense and the debts of the friends who share it.

        Returns:
            Result(TransactionView with its debts, None), or Result(None, error).
            Nothing is written when validation fails.
        """
        shares = list(shares)
        try:
            self.validate_split(new_txn, shares)
        except ValidationError as e:
            return Result(None, e)

        correlation_id = create_correlation_id()
        logger = get_logger(__name__, correlation_id)

        transaction_step = RecordTransactionStep(self._ledger, user_id, new_txn, period, tag_ids)
        steps: list[SagaStep] = [transaction_step]
        if shares:
            steps.append(RecordDebtsStep(self._ledger, user_id, transaction_step, shares))

        try:
            await Saga("create_split", steps, correlation_id).run()
        except (StorageError, LedgerError) as e:
            return Result(None, e)

        logger.info(
            "split_created",
            transaction_id=str(transaction_step.transaction.id),
            total_amount=str(new_txn.total_amount),
            share_count=len(shares),
        )
        return await self._ledger.get_transaction(transaction_step.transaction.id)

    async def settle_one(self, user_id: UUID, debt_id: UUID, period: Period) -> Result:
        """
        Settle a single debt and record the money collected.

        Settling an already-settled debt changes nothing and records no
        second credit.
        """
        result = await self._ledger.get_debt(debt_id)
        if result.error:
            return result
        debt = result.data
        if debt.user_id != user_id:
            return Result(None, NotFoundError(f"Debt not found: {debt_id}"))
        if debt.is_settled:
            return Result(Settlement(debts=[debt]), None)

        friend_name = debt.friend_name or "Friend"
        title = debt.transaction_title or "expense"

        def build_credit(settled: list[Debt]) -> Transaction:
            return self._credit(
                user_id,
                settled,
                period,
                title=fit_title(f"Collected: {friend_name} - {title}"),
                note="Debt collected",
            )

        return await self._settle(user_id, [debt], build_credit, "settle_one")

    async def settle_all_for_friend(
        self,
        user_id: UUID,
        friend_id: UUID,
        period: Period,
    ) -> Result:
        """
        Settle every pending debt of one friend with a single combined credit.

        No pending debts is an empty success.
        """
        result = await self._ledger.get_pending_debts_for_friend(user_id, friend_id)
        if result.error:
            return result
        pending = result.data
        if not pending:
            return Result(Settlement(), None)

        friend_name = pending[0].friend_name or "Friend"

        def build_credit(settled: list[Debt]) -> Transaction:
            count = len(settled)
            debts_label = f"{count} debt{'s' if count > 1 else ''}"
            return self._credit(
                user_id,
                settled,
                period,
                title=fit_title(f"Collected: {friend_name} ({debts_label})"),
                note="All debts collected",
            )

        return await self._settle(user_id, pending, build_credit, "settle_all_for_friend")

    async def _settle(
        self,
        user_id: UUID,
        debts: list[Debt],
        build_credit: Callable[[list[Debt]], Transaction],
        operation: str,
    ) -> Result:
        # The credit must be valid before anything is marked settled
        try:
            build_credit(debts)
        except ModelValidationError as e:
            return Result(None, ValidationError(f"Invalid credit transaction: {e}"))

        correlation_id = create_correlation_id()
        logger = get_logger(__name__, correlation_id)

        # One timestamp for every debt settled by this call
        mark_step = MarkSettledStep(self._ledger, [d.id for d in debts], self._clock())
        credit_step = RecordCreditStep(self._ledger, mark_step, build_credit)

        try:
            await Saga(operation, [mark_step, credit_step], correlation_id).run()
        except (StorageError, LedgerError) as e:
            if not mark_step.settled:
                return Result(None, e)
            settled_ids = [d.id for d in mark_step.settled]
            logger.error(
                "settlement_incomplete",
                user_id=str(user_id),
                debt_ids=[str(i) for i in settled_ids],
                error=str(e),
            )
            return Result(None, SettlementIncompleteError(
                f"{len(settled_ids)} debt(s) settled but the collected amount "
                f"was not recorded: {e}",
                settled_debt_ids=settled_ids,
                cause=e,
            ))

        settlement = Settlement(debts=mark_step.settled, credit=credit_step.credit)
        logger.info(
            "debts_settled",
            operation=operation,
            debt_count=len(settlement.debts),
            amount=str(settlement.total),
        )
        return Result(settlement, None)

    def _credit(
        self,
        user_id: UUID,
        settled: list[Debt],
        period: Period,
        title: str,
        note: str,
    ) -> Transaction:
        amount = sum((debt.amount for debt in settled), Decimal("0"))
        return Transaction(
            user_id=user_id,
            title=title,
            total_amount=amount,
            my_amount=-amount,
            category=self._settings.default_category,
            note=note,
            date=self._clock().date(),
            month=period.month,
            year=period.year,
        )
