"""
EMI Payment Engine

Paying an EMI month writes two rows: the EmiPayment (the "paid" marker,
unique per emi/month/year) and a Transaction so the installment shows up
as spending. The two always exist together:

- pay_month upserts the payment, then ensures exactly one linked
  transaction. If the transaction write fails, the payment is undone
  (deleted, or restored to its previous amount on a re-pay).
- unpay_month deletes the linked transaction first, then the payment.
  If the payment delete fails, the transaction is put back.

Paid/unpaid is reversible per month. Progress is the number of payment
rows; an EMI with every month paid accepts no new months.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

from pydantic import ValidationError as ModelValidationError

from spendly.config import get_settings
from spendly.ledger.errors import LedgerError, ValidationError
from spendly.ledger.saga import Saga, SagaStep
from spendly.ledger.store import LedgerStore
from spendly.log import create_correlation_id, get_logger
from spendly.models.ledger import (
    EmiPayment,
    EmiPaymentRecord,
    EmiView,
    Period,
    Result,
    Transaction,
    fit_title,
    utc_now,
)
from spendly.models.reports import EmiProgress
from spendly.services.storage.interface import StorageError


def emi_progress(emi: EmiView, period: Period) -> EmiProgress:
    """Paid/remaining months and money left on an EMI."""
    paid = len(emi.payments)
    remaining = max(emi.total_months - paid, 0)
    return EmiProgress(
        emi_id=emi.id,
        paid_months=paid,
        total_months=emi.total_months,
        remaining_months=remaining,
        total_left=emi.amount * remaining,
        is_complete=paid >= emi.total_months,
        paid_this_period=emi.is_paid(period),
    )


class UpsertPaymentStep(SagaStep):
    name = "upsert_emi_payment"

    def __init__(
        self,
        ledger: LedgerStore,
        payment: EmiPayment,
        previous: Optional[EmiPayment],
    ):
        self._ledger = ledger
        self._payment = payment
        self._previous = previous
        self.payment: Optional[EmiPayment] = None

    async def apply(self) -> EmiPayment:
        self.payment = (await self._ledger.upsert_emi_payment(self._payment)).unwrap()
        return self.payment

    async def compensate(self) -> None:
        if self._previous is None:
            result = await self._ledger.delete_emi_payment(
                self._payment.emi_id, self._payment.period
            )
        else:
            result = await self._ledger.upsert_emi_payment(self._previous)
        result.unwrap()


class LinkTransactionStep(SagaStep):
    """Insert the payment's transaction, or update the one already linked."""

    name = "link_emi_transaction"

    def __init__(self, ledger: LedgerStore, transaction: Transaction):
        self._ledger = ledger
        self._transaction = transaction
        self.transaction: Optional[Transaction] = None

    async def apply(self) -> Transaction:
        period = self._transaction.period
        existing = (
            await self._ledger.get_emi_transactions(self._transaction.emi_id, period)
        ).unwrap()

        if not existing:
            result = await self._ledger.record_transaction(self._transaction)
        elif existing[0].total_amount != self._transaction.total_amount:
            result = await self._ledger.update_transaction_amounts(
                existing[0].id,
                self._transaction.total_amount,
                self._transaction.my_amount,
            )
        else:
            result = Result(existing[0], None)

        self.transaction = result.unwrap()
        return self.transaction


class DeleteLinkedTransactionsStep(SagaStep):
    name = "delete_emi_transactions"

    def __init__(self, ledger: LedgerStore, emi_id: UUID, period: Period):
        self._ledger = ledger
        self._emi_id = emi_id
        self._period = period
        self._deleted: list[Transaction] = []
        self._tag_ids: dict[UUID, list[UUID]] = {}

    async def apply(self) -> int:
        self._deleted = (
            await self._ledger.get_emi_transactions(self._emi_id, self._period)
        ).unwrap()
        self._tag_ids = await self._ledger.tag_resolver.tag_ids_for(
            t.id for t in self._deleted
        )
        return (
            await self._ledger.delete_emi_transactions(self._emi_id, self._period)
        ).unwrap()

    async def compensate(self) -> None:
        for transaction in self._deleted:
            (await self._ledger.record_transaction(
                transaction, self._tag_ids.get(transaction.id, [])
            )).unwrap()


class DeletePaymentStep(SagaStep):
    name = "delete_emi_payment"

    def __init__(self, ledger: LedgerStore, emi_id: UUID, period: Period):
        self._ledger = ledger
        self._emi_id = emi_id
        self._period = period

    async def apply(self) -> int:
        return (await self._ledger.delete_emi_payment(self._emi_id, self._period)).unwrap()


class EmiPaymentEngine:
    """Pays and un-pays EMI months."""

    def __init__(
        self,
        ledger: LedgerStore,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._ledger = ledger
        self._clock = clock or utc_now
        self._settings = get_settings().ledger

    @staticmethod
    def progress(emi: EmiView, period: Period) -> EmiProgress:
        return emi_progress(emi, period)

    async def pay_month(
        self,
        user_id: UUID,
        emi_id: UUID,
        period: Period,
        amount: Optional[Decimal] = None,
        title: Optional[str] = None,
    ) -> Result:
        """
        Mark a month as paid and record the installment as spending.

        Calling twice for the same month leaves one payment and one
        transaction (the amount is overwritten). Amount and title
        default to the EMI's own.

        Returns:
            Result(EmiPaymentRecord, None). The record is empty when the
            EMI is already complete and the month was not paid.
            Result(None, ValidationError) for a non-positive amount;
            nothing is written.
        """
        result = await self._ledger.get_emi(user_id, emi_id)
        if result.error:
            return result
        emi = result.data

        correlation_id = create_correlation_id()
        logger = get_logger(__name__, correlation_id)

        progress = emi_progress(emi, period)
        if progress.is_complete and not progress.paid_this_period:
            logger.info("emi_already_complete", emi_id=str(emi.id), period=period.key)
            return Result(EmiPaymentRecord(), None)

        amount = amount if amount is not None else emi.amount
        title = title or emi.title
        previous = next((p for p in emi.payments if p.period == period), None)

        try:
            payment = EmiPayment(
                user_id=user_id,
                emi_id=emi.id,
                month=period.month,
                year=period.year,
                amount=amount,
            )
            transaction = Transaction(
                user_id=user_id,
                title=fit_title(f"EMI: {title}"),
                total_amount=amount,
                my_amount=amount,
                category=self._settings.emi_category,
                note=f"EMI payment for {period.label}",
                date=self._clock().date(),
                month=period.month,
                year=period.year,
                emi_id=emi.id,
            )
        except ModelValidationError as e:
            logger.warning("emi_payment_invalid", emi_id=str(emi.id), error=str(e))
            return Result(None, ValidationError(f"Invalid EMI payment: {e}"))

        payment_step = UpsertPaymentStep(self._ledger, payment, previous)
        link_step = LinkTransactionStep(self._ledger, transaction)

        try:
            await Saga("pay_emi_month", [payment_step, link_step], correlation_id).run()
        except (StorageError, LedgerError) as e:
            return Result(None, e)

        logger.info(
            "emi_month_paid",
            emi_id=str(emi.id),
            period=period.key,
            amount=str(amount),
            repaid=previous is not None,
        )
        return Result(
            EmiPaymentRecord(payment=payment_step.payment, transaction=link_step.transaction),
            None,
        )

    async def unpay_month(self, user_id: UUID, emi_id: UUID, period: Period) -> Result:
        """
        Mark a month as unpaid, removing its transaction and payment row.

        Returns:
            Result(True if a payment row was removed, None)
        """
        result = await self._ledger.get_emi(user_id, emi_id)
        if result.error:
            return result
        emi = result.data

        correlation_id = create_correlation_id()
        logger = get_logger(__name__, correlation_id)

        # Transaction first: a payment row without its transaction is the
        # recoverable state, the reverse is not
        steps = [
            DeleteLinkedTransactionsStep(self._ledger, emi.id, period),
            DeletePaymentStep(self._ledger, emi.id, period),
        ]
        try:
            _, payments_deleted = await Saga("unpay_emi_month", steps, correlation_id).run()
        except (StorageError, LedgerError) as e:
            return Result(None, e)

        logger.info("emi_month_unpaid", emi_id=str(emi.id), period=period.key)
        return Result(payments_deleted > 0, None)
