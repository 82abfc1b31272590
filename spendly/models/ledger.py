"""
Core Ledger Models for Spendly

These models define the strict schemas for every row the ledger reads
from or writes to the table store. They are designed to:
1. Validate store rows at the boundary (no loosely-typed dicts downstream)
2. Provide clear validation error messages
3. Be serializable back into store rows

DESIGN DECISION: Money is Decimal, ids are UUIDs generated client-side.
Rows coming back from a text-only backend (Google Sheets) are coerced
by pydantic's lax mode ("1000.00" -> Decimal, "True" -> bool).
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, NamedTuple, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


MONTH_ABBREVIATIONS = [
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
]

TITLE_MAX_LENGTH = 200


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def fit_title(title: str) -> str:
    """Cut a derived title down to what a title column holds."""
    return title[:TITLE_MAX_LENGTH].strip()


# =============================================================================
# PERIOD - the month a row is attributed to
# =============================================================================

class Period(BaseModel):
    """
    A calendar month.

    Every read and write that is "for this month" takes one of these
    explicitly; nothing in the ledger looks at the wall clock to decide
    which month it is working on.
    """
    model_config = ConfigDict(frozen=True)

    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1970, le=9999)

    @classmethod
    def of(cls, day: date) -> "Period":
        """The period containing a date."""
        return cls(month=day.month, year=day.year)

    @classmethod
    def current(cls, today: Optional[date] = None) -> "Period":
        """The period containing today (or the given date)."""
        return cls.of(today or date.today())

    @property
    def key(self) -> str:
        """Sortable key, e.g. '2026-03'."""
        return f"{self.year}-{self.month:02d}"

    @property
    def label(self) -> str:
        """Display label, e.g. 'Mar 2026'."""
        return f"{MONTH_ABBREVIATIONS[self.month - 1]} {self.year}"

    def shift(self, months: int) -> "Period":
        """Move forward (or back, if negative) by a number of months."""
        index = self.year * 12 + (self.month - 1) + months
        return Period(month=index % 12 + 1, year=index // 12)

    def contains(self, day: date) -> bool:
        return day.month == self.month and day.year == self.year


# =============================================================================
# STORED ENTITIES - one model per table
# =============================================================================

class Transaction(BaseModel):
    """
    A ledger entry.

    total_amount is what was physically paid; my_amount is the part
    that counts against the owner's budget. A negative my_amount marks
    a credit (money coming back, e.g. a collected debt).
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    total_amount: Decimal = Field(..., ge=0)
    my_amount: Decimal
    category: str = Field(default="General", max_length=50)
    note: str = Field(default="", max_length=1000)
    date: date
    month: int = Field(..., ge=1, le=12)
    year: int
    emi_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator('note', mode='before')
    @classmethod
    def blank_note(cls, v: Any) -> Any:
        return "" if v is None else v

    @model_validator(mode='after')
    def validate_share(self) -> 'Transaction':
        """My share can't exceed the total unless the row is a credit."""
        if self.my_amount >= 0 and self.my_amount > self.total_amount:
            raise ValueError("my_amount cannot exceed total_amount")
        return self

    @property
    def is_credit(self) -> bool:
        return self.my_amount < 0

    @property
    def is_emi(self) -> bool:
        return self.emi_id is not None

    @property
    def period(self) -> Period:
        return Period(month=self.month, year=self.year)


class Debt(BaseModel):
    """A friend's share of a split transaction."""

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    transaction_id: UUID
    friend_id: UUID
    amount: Decimal = Field(..., gt=0)
    is_settled: bool = False
    settled_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_settlement(self) -> 'Debt':
        if self.settled_at is not None and not self.is_settled:
            raise ValueError("A pending debt cannot have settled_at")
        return self


class Friend(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(default="", max_length=200)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator('email', mode='before')
    @classmethod
    def blank_email(cls, v: Any) -> Any:
        return "" if v is None else v


class Tag(BaseModel):
    """A label attached to transactions. Color is only a display hint."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=50)
    color: str = Field(default="#6ee7b7", max_length=20)


class TransactionTag(BaseModel):
    """Join row between a transaction and a tag."""

    transaction_id: UUID
    tag_id: UUID


class Budget(BaseModel):
    """Base budget for one month. One row per (user, month, year)."""

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    month: int = Field(..., ge=1, le=12)
    year: int
    amount: Decimal = Field(..., ge=0)


class Winning(BaseModel):
    """An ad hoc top-up to a month's effective budget."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    amount: Decimal = Field(..., ge=0)
    month: int = Field(..., ge=1, le=12)
    year: int
    created_at: datetime = Field(default_factory=utc_now)


class Emi(BaseModel):
    """A fixed monthly installment against a fixed-term obligation."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    amount: Decimal = Field(..., gt=0)
    total_months: int = Field(..., gt=0)
    start_month: int = Field(..., ge=1, le=12)
    start_year: int
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def start(self) -> Period:
        return Period(month=self.start_month, year=self.start_year)


class EmiPayment(BaseModel):
    """Marks one month of an EMI as paid. Unique per (emi, month, year)."""

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    emi_id: UUID
    month: int = Field(..., ge=1, le=12)
    year: int
    amount: Decimal = Field(..., gt=0)
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def period(self) -> Period:
        return Period(month=self.month, year=self.year)


# =============================================================================
# VIEWS - stored rows joined with related rows for reading
# =============================================================================

class DebtView(Debt):
    """A debt with its friend, parent transaction and that transaction's tags."""

    friend_name: Optional[str] = None
    friend_email: Optional[str] = None
    transaction: Optional[Transaction] = None
    tags: list[Tag] = Field(default_factory=list)

    @property
    def transaction_title(self) -> Optional[str]:
        return self.transaction.title if self.transaction else None


class TransactionView(Transaction):
    """A transaction with its tags and the debts split off it."""

    tags: list[Tag] = Field(default_factory=list)
    debts: list[DebtView] = Field(default_factory=list)

    @property
    def unsettled_debts(self) -> list[DebtView]:
        return [debt for debt in self.debts if not debt.is_settled]


class EmiView(Emi):
    """An EMI with its payment rows."""

    payments: list[EmiPayment] = Field(default_factory=list)

    def is_paid(self, period: Period) -> bool:
        return any(p.period == period for p in self.payments)


# =============================================================================
# INPUTS - caller-supplied data before it becomes a row
# =============================================================================

class NewTransaction(BaseModel):
    """An expense as entered by the owner."""
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    total_amount: Decimal = Field(..., gt=0)
    my_amount: Decimal = Field(..., ge=0)
    category: Optional[str] = None
    note: str = ""
    spent_on: Optional[date] = Field(
        default=None,
        description="Calendar date of the expense; defaults to today"
    )
    emi_id: Optional[UUID] = None


class Share(BaseModel):
    """One friend's part of a split."""

    friend_id: UUID
    amount: Decimal = Field(..., gt=0)


# =============================================================================
# OPERATION OUTCOMES
# =============================================================================

class Settlement(BaseModel):
    """
    What a settle call changed.

    debts are the rows now settled; credit is the reimbursement
    transaction, absent when nothing was pending.
    """

    debts: list[Debt] = Field(default_factory=list)
    credit: Optional[Transaction] = None

    @property
    def total(self) -> Decimal:
        return sum((debt.amount for debt in self.debts), Decimal("0"))


class EmiPaymentRecord(BaseModel):
    """A paid EMI month and its linked transaction. Both None for a no-op."""

    payment: Optional[EmiPayment] = None
    transaction: Optional[Transaction] = None


# =============================================================================
# RESULT ENVELOPE
# =============================================================================

class Result(NamedTuple):
    """
    (data, error) pair returned by every ledger operation.

    Exactly one of the two is meaningful: error is None on success.
    """
    data: Any = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        """Return data, or raise the error."""
        if self.error is not None:
            raise self.error
        return self.data
