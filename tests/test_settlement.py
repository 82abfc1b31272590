"""
Tests for splitting expenses and settling debts.
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from spendly.ledger import (
    CompensationError,
    NotFoundError,
    Saga,
    SettlementIncompleteError,
    ValidationError,
)
from spendly.ledger.settlement import MarkSettledStep, RecordCreditStep
from spendly.models import TITLE_MAX_LENGTH, NewTransaction, Period, Share, Transaction
from spendly.services.storage import DEBTS, TRANSACTIONS, TransportError


def expense(total, mine, title="Dinner") -> NewTransaction:
    return NewTransaction(title=title, total_amount=Decimal(total), my_amount=Decimal(mine))


class TestCreateSplit:
    """Tests for recording a split expense."""

    def test_split_recorded_with_debts(self, split, friend):
        """Test a valid split returns the transaction and its debts."""
        assert split.total_amount == Decimal("1000")
        assert split.my_amount == Decimal("600")
        assert len(split.debts) == 1
        assert split.debts[0].amount == Decimal("400")
        assert split.debts[0].friend_name == "Asha"
        assert not split.debts[0].is_settled

    def test_shares_must_add_up(self, run, settlements, store, user_id, friend, period):
        """Test that a gap larger than the tolerance writes nothing."""
        result = run(settlements.create_split(
            user_id,
            expense("1000", "600"),
            [Share(friend_id=friend.id, amount=Decimal("300"))],
            period,
        ))

        assert isinstance(result.error, ValidationError)
        assert store.rows(TRANSACTIONS) == []
        assert store.rows(DEBTS) == []

    def test_rounding_within_tolerance(self, run, settlements, ledger, user_id, friend, period):
        """Test that a one-cent gap from thirds is accepted."""
        other = run(ledger.add_friend(user_id, "Ben")).unwrap()
        result = run(settlements.create_split(
            user_id,
            expense("100", "33.33"),
            [
                Share(friend_id=friend.id, amount=Decimal("33.33")),
                Share(friend_id=other.id, amount=Decimal("33.33")),
            ],
            period,
        ))
        assert result.ok
        assert len(result.data.debts) == 2

    def test_no_shares_requires_full_share(self, run, settlements, user_id, period):
        """Test that without friends the owner's share is the total."""
        assert run(settlements.create_split(user_id, expense("500", "500"), [], period)).ok

        result = run(settlements.create_split(user_id, expense("500", "200"), [], period))
        assert isinstance(result.error, ValidationError)

    def test_my_share_above_total(self, run, settlements, user_id, friend, period):
        """Test that the owner's share can't exceed the total."""
        result = run(settlements.create_split(
            user_id,
            expense("100", "150"),
            [Share(friend_id=friend.id, amount=Decimal("1"))],
            period,
        ))
        assert isinstance(result.error, ValidationError)

    def test_debt_failure_removes_transaction(self, run, settlements, store, user_id, friend, period):
        """Test that a failed debt insert undoes the transaction."""
        store.fail("insert", DEBTS)

        result = run(settlements.create_split(
            user_id,
            expense("1000", "600"),
            [Share(friend_id=friend.id, amount=Decimal("400"))],
            period,
        ))

        assert isinstance(result.error, TransportError)
        assert store.rows(TRANSACTIONS) == []

    def test_failed_undo_is_reported(self, run, settlements, store, user_id, friend, period):
        """Test that a failed compensation surfaces both errors."""
        store.fail("insert", DEBTS)
        store.fail("delete", TRANSACTIONS)

        result = run(settlements.create_split(
            user_id,
            expense("1000", "600"),
            [Share(friend_id=friend.id, amount=Decimal("400"))],
            period,
        ))

        assert isinstance(result.error, CompensationError)
        assert isinstance(result.error.primary, TransportError)
        assert isinstance(result.error.secondary, TransportError)
        assert len(store.rows(TRANSACTIONS)) == 1


class TestSettleOne:
    """Tests for settling a single debt."""

    def test_settle_records_credit(self, run, settlements, user_id, split, now):
        """Test the settled flag and the reimbursement credit."""
        april = Period(month=4, year=2026)
        settlement = run(settlements.settle_one(user_id, split.debts[0].id, april)).unwrap()

        assert settlement.total == Decimal("400")
        assert settlement.debts[0].is_settled
        assert settlement.debts[0].settled_at == now

        credit = settlement.credit
        assert credit.total_amount == Decimal("400")
        assert credit.my_amount == Decimal("-400")
        assert credit.title == "Collected: Asha - Dinner"
        assert credit.note == "Debt collected"
        assert credit.category == "General"
        assert credit.date == date(2026, 3, 15)
        assert credit.period == april

    def test_settle_twice_is_idempotent(self, run, settlements, store, user_id, split, period):
        """Test that a second settle records no second credit."""
        debt_id = split.debts[0].id
        run(settlements.settle_one(user_id, debt_id, period)).unwrap()
        again = run(settlements.settle_one(user_id, debt_id, period)).unwrap()

        assert again.credit is None
        assert again.debts[0].is_settled
        assert len(store.rows(TRANSACTIONS)) == 2

    def test_unknown_debt(self, run, settlements, user_id, period):
        """Test settling a debt that doesn't exist."""
        result = run(settlements.settle_one(user_id, uuid4(), period))
        assert isinstance(result.error, NotFoundError)

    def test_other_users_debt(self, run, settlements, split, period):
        """Test that a debt is only visible to its owner."""
        result = run(settlements.settle_one(uuid4(), split.debts[0].id, period))
        assert isinstance(result.error, NotFoundError)

    def test_credit_failure_keeps_settlement(self, run, settlements, store, user_id, split, period):
        """Test that a failed credit leaves the debt settled and says so."""
        debt_id = split.debts[0].id
        store.fail("insert", TRANSACTIONS)

        result = run(settlements.settle_one(user_id, debt_id, period))

        assert isinstance(result.error, SettlementIncompleteError)
        assert result.error.settled_debt_ids == [debt_id]
        assert isinstance(result.error.cause, TransportError)
        assert store.rows(DEBTS)[0]["is_settled"] is True
        assert len(store.rows(TRANSACTIONS)) == 1

    def test_mark_failure_writes_nothing(self, run, settlements, store, user_id, split, period):
        """Test that a failed bulk update is a plain error."""
        store.fail("update", DEBTS)

        result = run(settlements.settle_one(user_id, split.debts[0].id, period))
        assert isinstance(result.error, TransportError)
        assert store.rows(DEBTS)[0]["is_settled"] is False

    def test_long_title_credit_is_clipped(self, run, settlements, store, user_id, friend, period):
        """Test that a near-limit expense title still yields a recorded credit."""
        split = run(settlements.create_split(
            user_id,
            expense("1000", "600", "d" * 195),
            [Share(friend_id=friend.id, amount=Decimal("400"))],
            period,
        )).unwrap()

        settlement = run(settlements.settle_one(user_id, split.debts[0].id, period)).unwrap()

        assert len(settlement.credit.title) == TITLE_MAX_LENGTH
        assert settlement.credit.title.startswith("Collected: Asha - ddd")
        assert store.rows(DEBTS)[0]["is_settled"] is True
        assert len(store.rows(TRANSACTIONS)) == 2

    def test_invalid_credit_is_a_ledger_error(self, run, ledger, store, user_id, split, now):
        """Test that a credit failing model checks is reported like a write failure."""
        def blank_credit(settled):
            return Transaction(
                user_id=user_id,
                title="   ",
                total_amount=Decimal("400"),
                my_amount=Decimal("-400"),
                date=now.date(),
                month=3,
                year=2026,
            )

        mark_step = MarkSettledStep(ledger, [split.debts[0].id], now)
        credit_step = RecordCreditStep(ledger, mark_step, blank_credit)

        with pytest.raises(ValidationError):
            run(Saga("settle", [mark_step, credit_step]).run())
        assert store.rows(DEBTS)[0]["is_settled"] is True
        assert len(store.rows(TRANSACTIONS)) == 1


class TestSettleAllForFriend:
    """Tests for settling every pending debt of a friend."""

    def make_splits(self, run, settlements, user_id, friend, period, amounts):
        for amount in amounts:
            run(settlements.create_split(
                user_id,
                expense(str(amount * 2), str(amount)),
                [Share(friend_id=friend.id, amount=Decimal(amount))],
                period,
            )).unwrap()

    def test_single_combined_credit(
        self, run, settlements, ledger, store, user_id, friend, period, now
    ):
        """Test that [120, 380] settle into one 500 credit."""
        self.make_splits(run, settlements, user_id, friend, period, [120, 380])

        settlement = run(settlements.settle_all_for_friend(user_id, friend.id, period)).unwrap()

        assert settlement.total == Decimal("500")
        assert settlement.credit.total_amount == Decimal("500")
        assert settlement.credit.my_amount == Decimal("-500")
        assert settlement.credit.title == "Collected: Asha (2 debts)"
        assert settlement.credit.note == "All debts collected"
        assert {d.settled_at for d in settlement.debts} == {now}
        assert run(ledger.get_pending_debts(user_id)).unwrap() == []
        assert len(store.rows(TRANSACTIONS)) == 3

    def test_single_debt_title(self, run, settlements, user_id, friend, split, period):
        """Test the singular title."""
        settlement = run(settlements.settle_all_for_friend(user_id, friend.id, period)).unwrap()
        assert settlement.credit.title == "Collected: Asha (1 debt)"

    def test_only_that_friend(self, run, settlements, ledger, user_id, friend, split, period):
        """Test that other friends' debts stay pending."""
        ben = run(ledger.add_friend(user_id, "Ben")).unwrap()
        run(settlements.create_split(
            user_id,
            expense("200", "100", "Taxi"),
            [Share(friend_id=ben.id, amount=Decimal("100"))],
            period,
        )).unwrap()

        run(settlements.settle_all_for_friend(user_id, friend.id, period)).unwrap()

        pending = run(ledger.get_pending_debts(user_id)).unwrap()
        assert [d.friend_name for d in pending] == ["Ben"]

    def test_nothing_pending(self, run, settlements, store, user_id, friend, period):
        """Test the empty success."""
        settlement = run(settlements.settle_all_for_friend(user_id, friend.id, period)).unwrap()

        assert settlement.debts == []
        assert settlement.credit is None
        assert store.rows(TRANSACTIONS) == []
