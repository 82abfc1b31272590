"""
Ledger Store

Typed CRUD for every ledger entity on top of a TableStore. This layer
holds no business rules beyond row shape: it validates rows into models
on the way in and out, joins related rows for reading, and reports every
failure as a Result instead of raising.

Rules that span several writes (splitting, settling, paying EMIs) live
in the engines, which use this store as their only way to the data.
"""

import functools
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional, Type, TypeVar
from uuid import UUID

from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from spendly.config import get_settings
from spendly.ledger.errors import LedgerError, ValidationError
from spendly.ledger.tags import TagJoinResolver
from spendly.log import get_logger
from spendly.models.ledger import (
    Budget,
    Debt,
    DebtView,
    Emi,
    EmiPayment,
    EmiView,
    Friend,
    NewTransaction,
    Period,
    Result,
    Tag,
    Transaction,
    TransactionView,
    Winning,
    utc_now,
)
from spendly.services.storage.interface import (
    BUDGETS,
    DEBTS,
    EMI_PAYMENTS,
    EMIS,
    FRIENDS,
    TABLE_COLUMNS,
    TAGS,
    TRANSACTIONS,
    UNIQUE_KEYS,
    WINNINGS,
    Gte,
    In,
    NotFoundError,
    StorageError,
    TableStore,
)


M = TypeVar("M", bound=BaseModel)


def returns_result(func):
    """
    Run a store operation and wrap its outcome in a Result.

    Storage and ledger errors become Result(None, error). Pydantic errors
    raised while building rows from caller input become ValidationError.
    Anything else is a bug and propagates.
    """
    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs) -> Result:
        try:
            return Result(await func(self, *args, **kwargs), None)
        except ModelValidationError as e:
            error = ValidationError(str(e))
        except (StorageError, LedgerError) as e:
            error = e
        self._logger.warning(
            "ledger_operation_failed",
            operation=func.__name__,
            error_type=type(error).__name__,
            error=str(error),
        )
        return Result(None, error)
    return wrapper


def load_rows(model: Type[M], rows: Iterable[dict[str, Any]]) -> list[M]:
    """Validate store rows into models; malformed rows are a storage error."""
    try:
        return [model.model_validate(row) for row in rows]
    except ModelValidationError as e:
        raise StorageError(f"Malformed {model.__name__} row: {e}")


def to_row(table: str, model: BaseModel) -> dict[str, Any]:
    """Dump only the columns the table stores (views carry extra fields)."""
    return model.model_dump(include=set(TABLE_COLUMNS[table]))


class LedgerStore:
    """
    One query and one mutation function per entity, scoped by user.

    Every public method returns Result(data, error).
    """

    def __init__(
        self,
        store: TableStore,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._tags = TagJoinResolver(store)
        self._clock = clock or utc_now
        self._settings = get_settings().ledger
        self._logger = get_logger(__name__)

    @property
    def table_store(self) -> TableStore:
        return self._store

    @property
    def tag_resolver(self) -> TagJoinResolver:
        return self._tags

    # =========================================================================
    # BUDGETS
    # =========================================================================

    @returns_result
    async def get_budget(self, user_id: UUID, period: Period) -> Optional[Budget]:
        rows = await self._store.select(
            BUDGETS, {"user_id": user_id, "month": period.month, "year": period.year}
        )
        budgets = load_rows(Budget, rows)
        return budgets[0] if budgets else None

    @returns_result
    async def get_budgets_since(self, user_id: UUID, year: int) -> list[Budget]:
        rows = await self._store.select(BUDGETS, {"user_id": user_id, "year": Gte(year)})
        return load_rows(Budget, rows)

    @returns_result
    async def upsert_budget(self, user_id: UUID, amount: Decimal, period: Period) -> Budget:
        """Set the base budget for a month, replacing any earlier amount."""
        budget = Budget(user_id=user_id, month=period.month, year=period.year, amount=amount)
        row = await self._store.upsert(BUDGETS, to_row(BUDGETS, budget), UNIQUE_KEYS[BUDGETS])
        return load_rows(Budget, [row])[0]

    # =========================================================================
    # TAGS
    # =========================================================================

    @returns_result
    async def get_tags(self, user_id: UUID) -> list[Tag]:
        rows = await self._store.select(TAGS, {"user_id": user_id}, order_by="name")
        return load_rows(Tag, rows)

    @returns_result
    async def create_tag(self, user_id: UUID, name: str, color: Optional[str] = None) -> Tag:
        tag = Tag(user_id=user_id, name=name, color=color or self._settings.default_tag_color)
        rows = await self._store.insert(TAGS, [to_row(TAGS, tag)])
        return load_rows(Tag, rows)[0]

    @returns_result
    async def delete_tag(self, tag_id: UUID) -> None:
        await self._tags.unlink_tag(tag_id)
        await self._store.delete(TAGS, {"id": tag_id})

    # =========================================================================
    # FRIENDS
    # =========================================================================

    @returns_result
    async def get_friends(self, user_id: UUID) -> list[Friend]:
        rows = await self._store.select(FRIENDS, {"user_id": user_id}, order_by="name")
        return load_rows(Friend, rows)

    @returns_result
    async def add_friend(self, user_id: UUID, name: str, email: str = "") -> Friend:
        friend = Friend(user_id=user_id, name=name, email=email)
        rows = await self._store.insert(FRIENDS, [to_row(FRIENDS, friend)])
        return load_rows(Friend, rows)[0]

    @returns_result
    async def delete_friend(self, friend_id: UUID) -> None:
        """Remove a friend. Their historical debts are kept."""
        await self._store.delete(FRIENDS, {"id": friend_id})

    @returns_result
    async def get_friend_debts(self, user_id: UUID, friend_id: UUID) -> list[DebtView]:
        """Full debt history for one friend, settled and pending, newest first."""
        rows = await self._store.select(
            DEBTS,
            {"user_id": user_id, "friend_id": friend_id},
            order_by="created_at",
            descending=True,
        )
        return await self._debt_views(load_rows(Debt, rows))

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    @returns_result
    async def get_transactions(self, user_id: UUID, period: Period) -> list[TransactionView]:
        """A month's transactions, newest first, with their debts and tags."""
        rows = await self._store.select(
            TRANSACTIONS,
            {"user_id": user_id, "month": period.month, "year": period.year},
            order_by="created_at",
            descending=True,
        )
        return await self._transaction_views(load_rows(Transaction, rows))

    @returns_result
    async def get_transactions_since(self, user_id: UUID, year: int) -> list[TransactionView]:
        """Every transaction from the start of a year on, newest date first, with tags."""
        rows = await self._store.select(
            TRANSACTIONS,
            {"user_id": user_id, "year": Gte(year)},
            order_by="date",
            descending=True,
        )
        transactions = load_rows(Transaction, rows)
        tag_map = await self._tags.tags_for(t.id for t in transactions)
        return [
            TransactionView(**t.model_dump(), tags=tag_map.get(t.id, []))
            for t in transactions
        ]

    @returns_result
    async def get_transaction(self, transaction_id: UUID) -> TransactionView:
        rows = await self._store.select(TRANSACTIONS, {"id": transaction_id})
        if not rows:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        return (await self._transaction_views(load_rows(Transaction, rows)))[0]

    @returns_result
    async def add_transaction(
        self,
        user_id: UUID,
        new_txn: NewTransaction,
        period: Period,
        tag_ids: Iterable[UUID] = (),
    ) -> Transaction:
        """Record an expense entered by the owner, attributed to a period."""
        if new_txn.my_amount > new_txn.total_amount:
            raise ValidationError("Your share can't exceed the total amount")

        transaction = Transaction(
            user_id=user_id,
            title=new_txn.title,
            total_amount=new_txn.total_amount,
            my_amount=new_txn.my_amount,
            category=new_txn.category or self._settings.default_category,
            note=new_txn.note,
            date=new_txn.spent_on or self._clock().date(),
            month=period.month,
            year=period.year,
            emi_id=new_txn.emi_id,
        )
        return await self._insert_transaction(transaction, tag_ids)

    @returns_result
    async def record_transaction(
        self,
        transaction: Transaction,
        tag_ids: Iterable[UUID] = (),
    ) -> Transaction:
        """Insert a fully-formed transaction (credits, EMI rows)."""
        return await self._insert_transaction(transaction, tag_ids)

    @returns_result
    async def update_transaction_amounts(
        self,
        transaction_id: UUID,
        total_amount: Decimal,
        my_amount: Decimal,
    ) -> Transaction:
        rows = await self._store.update(
            TRANSACTIONS,
            {"id": transaction_id},
            {"total_amount": total_amount, "my_amount": my_amount},
        )
        if not rows:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        return load_rows(Transaction, rows)[0]

    @returns_result
    async def delete_transaction(self, transaction_id: UUID) -> None:
        """
        Delete a transaction with its debts and tag links.

        EMI-linked transactions are refused: they belong to an EMI
        payment and only the EMI payment engine removes them.
        """
        rows = await self._store.select(TRANSACTIONS, {"id": transaction_id})
        if not rows:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        transaction = load_rows(Transaction, rows)[0]
        if transaction.is_emi:
            raise ValidationError(
                "EMI payments can only be removed by un-paying the EMI month"
            )

        await self._store.delete(DEBTS, {"transaction_id": transaction_id})
        await self._tags.unlink_transaction(transaction_id)
        await self._store.delete(TRANSACTIONS, {"id": transaction_id})

    @returns_result
    async def get_emi_transactions(self, emi_id: UUID, period: Period) -> list[Transaction]:
        rows = await self._store.select(
            TRANSACTIONS, {"emi_id": emi_id, "month": period.month, "year": period.year}
        )
        return load_rows(Transaction, rows)

    @returns_result
    async def delete_emi_transactions(self, emi_id: UUID, period: Period) -> int:
        """Remove the transactions linked to one EMI month. EMI engine only."""
        rows = await self._store.select(
            TRANSACTIONS, {"emi_id": emi_id, "month": period.month, "year": period.year}
        )
        for transaction in load_rows(Transaction, rows):
            await self._tags.unlink_transaction(transaction.id)
        return await self._store.delete(
            TRANSACTIONS, {"emi_id": emi_id, "month": period.month, "year": period.year}
        )

    # =========================================================================
    # DEBTS
    # =========================================================================

    @returns_result
    async def add_debts(self, debts: list[Debt]) -> list[Debt]:
        if not debts:
            return []
        rows = await self._store.insert(DEBTS, [to_row(DEBTS, debt) for debt in debts])
        return load_rows(Debt, rows)

    @returns_result
    async def get_pending_debts(self, user_id: UUID) -> list[DebtView]:
        """All unsettled debts, newest first, with friend, transaction and tags."""
        rows = await self._store.select(
            DEBTS,
            {"user_id": user_id, "is_settled": False},
            order_by="created_at",
            descending=True,
        )
        return await self._debt_views(load_rows(Debt, rows))

    @returns_result
    async def get_pending_debts_for_friend(self, user_id: UUID, friend_id: UUID) -> list[DebtView]:
        rows = await self._store.select(
            DEBTS,
            {"user_id": user_id, "friend_id": friend_id, "is_settled": False},
            order_by="created_at",
        )
        return await self._debt_views(load_rows(Debt, rows))

    @returns_result
    async def get_debt(self, debt_id: UUID) -> DebtView:
        """One debt with its friend's name and its transaction."""
        rows = await self._store.select(DEBTS, {"id": debt_id})
        if not rows:
            raise NotFoundError(f"Debt not found: {debt_id}")
        return (await self._debt_views(load_rows(Debt, rows)))[0]

    @returns_result
    async def get_debts_for_transactions(
        self,
        user_id: UUID,
        transaction_ids: Iterable[UUID],
    ) -> list[Debt]:
        ids = list(transaction_ids)
        if not ids:
            return []
        rows = await self._store.select(
            DEBTS, {"user_id": user_id, "transaction_id": In(ids)}
        )
        return load_rows(Debt, rows)

    @returns_result
    async def mark_debts_settled(
        self,
        debt_ids: Iterable[UUID],
        settled_at: datetime,
    ) -> list[Debt]:
        """
        Settle debts in one bulk update.

        Only rows still pending are touched, so settling twice is a no-op.
        """
        ids = list(debt_ids)
        if not ids:
            return []
        rows = await self._store.update(
            DEBTS,
            {"id": In(ids), "is_settled": False},
            {"is_settled": True, "settled_at": settled_at},
        )
        return load_rows(Debt, rows)

    # =========================================================================
    # WINNINGS
    # =========================================================================

    @returns_result
    async def get_winnings(self, user_id: UUID, period: Period) -> list[Winning]:
        rows = await self._store.select(
            WINNINGS,
            {"user_id": user_id, "month": period.month, "year": period.year},
            order_by="created_at",
            descending=True,
        )
        return load_rows(Winning, rows)

    @returns_result
    async def add_winning(
        self,
        user_id: UUID,
        title: str,
        amount: Decimal,
        period: Period,
    ) -> Winning:
        winning = Winning(
            user_id=user_id,
            title=title,
            amount=amount,
            month=period.month,
            year=period.year,
        )
        rows = await self._store.insert(WINNINGS, [to_row(WINNINGS, winning)])
        return load_rows(Winning, rows)[0]

    @returns_result
    async def delete_winning(self, winning_id: UUID) -> None:
        await self._store.delete(WINNINGS, {"id": winning_id})

    # =========================================================================
    # EMIS
    # =========================================================================

    @returns_result
    async def get_emis(self, user_id: UUID) -> list[EmiView]:
        """Active EMIs, newest first, with their payments."""
        rows = await self._store.select(
            EMIS,
            {"user_id": user_id, "is_active": True},
            order_by="created_at",
            descending=True,
        )
        return await self._emi_views(load_rows(Emi, rows))

    @returns_result
    async def get_emi(self, user_id: UUID, emi_id: UUID) -> EmiView:
        rows = await self._store.select(EMIS, {"user_id": user_id, "id": emi_id})
        if not rows:
            raise NotFoundError(f"EMI not found: {emi_id}")
        return (await self._emi_views(load_rows(Emi, rows)))[0]

    @returns_result
    async def add_emi(
        self,
        user_id: UUID,
        title: str,
        amount: Decimal,
        total_months: int,
        start: Period,
    ) -> Emi:
        emi = Emi(
            user_id=user_id,
            title=title,
            amount=amount,
            total_months=total_months,
            start_month=start.month,
            start_year=start.year,
        )
        rows = await self._store.insert(EMIS, [to_row(EMIS, emi)])
        return load_rows(Emi, rows)[0]

    @returns_result
    async def delete_emi(self, emi_id: UUID) -> None:
        """Remove an EMI and its payment rows. Paid transactions stay as history."""
        await self._store.delete(EMI_PAYMENTS, {"emi_id": emi_id})
        await self._store.delete(EMIS, {"id": emi_id})

    @returns_result
    async def upsert_emi_payment(self, payment: EmiPayment) -> EmiPayment:
        """Write a payment keyed by (emi, month, year); re-paying overwrites the amount."""
        row = await self._store.upsert(
            EMI_PAYMENTS, to_row(EMI_PAYMENTS, payment), UNIQUE_KEYS[EMI_PAYMENTS]
        )
        return load_rows(EmiPayment, [row])[0]

    @returns_result
    async def delete_emi_payment(self, emi_id: UUID, period: Period) -> int:
        return await self._store.delete(
            EMI_PAYMENTS, {"emi_id": emi_id, "month": period.month, "year": period.year}
        )

    # =========================================================================
    # JOINS
    # =========================================================================

    async def _insert_transaction(
        self,
        transaction: Transaction,
        tag_ids: Iterable[UUID],
    ) -> Transaction:
        rows = await self._store.insert(TRANSACTIONS, [to_row(TRANSACTIONS, transaction)])
        saved = load_rows(Transaction, rows)[0]

        tag_ids = list(tag_ids)
        if tag_ids:
            try:
                await self._tags.link(saved.id, tag_ids)
            except StorageError as e:
                # Tags are display-only; the expense itself is recorded
                self._logger.warning(
                    "tag_link_failed",
                    transaction_id=str(saved.id),
                    error=str(e),
                )
        return saved

    async def _friend_lookup(self, friend_ids: set[UUID]) -> dict[UUID, Friend]:
        if not friend_ids:
            return {}
        rows = await self._store.select(FRIENDS, {"id": In(friend_ids)})
        return {friend.id: friend for friend in load_rows(Friend, rows)}

    async def _transaction_views(self, transactions: list[Transaction]) -> list[TransactionView]:
        ids = [t.id for t in transactions]
        if not ids:
            return []

        debt_rows = await self._store.select(
            DEBTS, {"transaction_id": In(ids)}, order_by="created_at"
        )
        debts = load_rows(Debt, debt_rows)
        friends = await self._friend_lookup({d.friend_id for d in debts})
        tag_map = await self._tags.tags_for(ids)

        debts_by_txn: dict[UUID, list[DebtView]] = {}
        for debt in debts:
            friend = friends.get(debt.friend_id)
            debts_by_txn.setdefault(debt.transaction_id, []).append(
                DebtView(
                    **debt.model_dump(),
                    friend_name=friend.name if friend else None,
                    friend_email=friend.email if friend else None,
                )
            )

        return [
            TransactionView(
                **t.model_dump(),
                tags=tag_map.get(t.id, []),
                debts=debts_by_txn.get(t.id, []),
            )
            for t in transactions
        ]

    async def _debt_views(self, debts: list[Debt]) -> list[DebtView]:
        if not debts:
            return []

        friends = await self._friend_lookup({d.friend_id for d in debts})
        txn_ids = list(dict.fromkeys(d.transaction_id for d in debts))
        txn_rows = await self._store.select(TRANSACTIONS, {"id": In(txn_ids)})
        transactions = {t.id: t for t in load_rows(Transaction, txn_rows)}
        tag_map = await self._tags.tags_for(txn_ids)

        views = []
        for debt in debts:
            # Deleted friends leave the debt readable without a name
            friend = friends.get(debt.friend_id)
            views.append(DebtView(
                **debt.model_dump(),
                friend_name=friend.name if friend else None,
                friend_email=friend.email if friend else None,
                transaction=transactions.get(debt.transaction_id),
                tags=tag_map.get(debt.transaction_id, []),
            ))
        return views

    async def _emi_views(self, emis: list[Emi]) -> list[EmiView]:
        if not emis:
            return []
        rows = await self._store.select(
            EMI_PAYMENTS, {"emi_id": In([e.id for e in emis])}, order_by="created_at"
        )
        payments = load_rows(EmiPayment, rows)
        return [
            EmiView(**emi.model_dump(), payments=[p for p in payments if p.emi_id == emi.id])
            for emi in emis
        ]
