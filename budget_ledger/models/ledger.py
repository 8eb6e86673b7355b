"""
Core Ledger Models

These models define the entities held by the ledger store:
accounts, their pots, incomes, targets and expenses, and transaction
records.

DESIGN DECISION: Money is always Decimal, quantized to two places.
Floats never touch a balance.

Day-of-month fields arrive from the UI as strings ("15", "15th",
"2024-05-15") and are normalized to an int in 1..31 on write.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    model_validator,
)


CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Quantize a value to currency minor-unit precision."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


_ORDINAL_SUFFIXES = ("st", "nd", "rd", "th")


def parse_day_of_month(value: Any) -> int:
    """
    Normalize a day-of-month value coming from the boundary.

    Accepts ints, numeric strings, ordinals ("3rd"), ISO dates and
    datetimes, and "dd/MM" or "dd/MM/yyyy" strings.

    Raises ValueError if no day can be read or it is outside 1..31.
    """
    if isinstance(value, bool):
        raise ValueError("Day of month must be a number between 1 and 31")

    if isinstance(value, (date, datetime)):
        day = value.day
    elif isinstance(value, int):
        day = value
    elif isinstance(value, str):
        day = _day_from_string(value.strip())
    else:
        raise ValueError(f"Unsupported day of month: {value!r}")

    if not 1 <= day <= 31:
        raise ValueError(f"Day of month must be between 1 and 31, got {day}")
    return day


def _day_from_string(raw: str) -> int:
    if raw.isdigit():
        return int(raw)

    lowered = raw.lower()
    for suffix in _ORDINAL_SUFFIXES:
        if lowered.endswith(suffix) and lowered[:-len(suffix)].isdigit():
            return int(lowered[:-len(suffix)])

    if "/" in raw:
        head = raw.split("/", 1)[0]
        if head.isdigit():
            return int(head)

    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).day
    except ValueError:
        pass

    raise ValueError(f"Could not read a day of month from {raw!r}")


DayOfMonth = Annotated[int, BeforeValidator(parse_day_of_month)]


# =============================================================================
# ENUMS
# =============================================================================

class AccountKind(str, Enum):
    """Supported account kinds."""
    CURRENT = "current"
    CREDIT = "credit"
    SAVINGS = "savings"
    INVESTMENT = "investment"


class PaymentMethod(str, Enum):
    """How a transaction record is paid."""
    CARD = "card"
    DIRECT_DEBIT = "direct_debit"
    CREDIT_CARD_CHARGE = "credit_card_charge"
    OTHER = "other"


class TransactionKind(str, Enum):
    """
    Transaction record kind.

    Only SCHEDULED records take part in the recurring sweep.
    """
    MANUAL = "manual"
    SCHEDULED = "scheduled"


# =============================================================================
# ACCOUNT-OWNED ENTITIES
# =============================================================================

class Pot(BaseModel):
    """
    A named sub-balance inside an account.

    Names are unique within the owning account; schedules and
    transactions refer to pots by name.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int
    name: str = Field(..., min_length=1, max_length=100)
    balance: Decimal = Decimal("0.00")
    exclude_from_reset: bool = False


class Income(BaseModel):
    """A recurring income paid into an account (or one of its pots)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int
    description: str = Field(..., min_length=1, max_length=200)
    company: str = Field(default="", max_length=200)
    amount: Decimal = Field(..., gt=0)
    day_of_month: DayOfMonth
    pot_name: Optional[str] = None


class Target(BaseModel):
    """A budget target for an account. Balance neutral."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int
    name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., ge=0)
    day_of_month: DayOfMonth


class Expense(BaseModel):
    """
    A one-off spend booked against an account.

    Adding an expense debits the owning account; deleting it gives the
    money back. to_account_id and to_pot_name only record where the
    money went.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int
    amount: Decimal = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=200)
    date: datetime
    to_account_id: Optional[int] = None
    to_pot_name: Optional[str] = None


class Account(BaseModel):
    """
    A ledger account.

    INVARIANT: credit_limit is present if and only if kind is CREDIT.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int
    name: str = Field(..., min_length=1, max_length=100)
    kind: AccountKind
    category: Optional[str] = Field(
        default=None,
        max_length=50,
        description="Free-text grouping such as 'personal' or 'joint'"
    )
    balance: Decimal = Decimal("0.00")
    credit_limit: Optional[Decimal] = Field(default=None, ge=0)
    exclude_from_reset: bool = False

    pots: list[Pot] = Field(default_factory=list)
    incomes: list[Income] = Field(default_factory=list)
    targets: list[Target] = Field(default_factory=list)
    expenses: list[Expense] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_credit_limit(self) -> 'Account':
        """Credit limit belongs to credit accounts only."""
        if self.kind == AccountKind.CREDIT and self.credit_limit is None:
            raise ValueError("Credit accounts require a credit limit")
        if self.kind != AccountKind.CREDIT and self.credit_limit is not None:
            raise ValueError("Only credit accounts may have a credit limit")
        return self

    @property
    def is_credit(self) -> bool:
        return self.kind == AccountKind.CREDIT

    def find_pot(self, name: str) -> Optional[Pot]:
        for pot in self.pots:
            if pot.name == name:
                return pot
        return None

    def find_income(self, income_id: int) -> Optional[Income]:
        for income in self.incomes:
            if income.id == income_id:
                return income
        return None

    def find_target(self, target_id: int) -> Optional[Target]:
        for target in self.targets:
            if target.id == target_id:
                return target
        return None

    def find_expense(self, expense_id: int) -> Optional[Expense]:
        for expense in self.expenses:
            if expense.id == expense_id:
                return expense
        return None


# =============================================================================
# TRANSACTION RECORDS
# =============================================================================

class TransactionRecord(BaseModel):
    """
    A bill, payment or transfer known to the ledger.

    Scheduled records are applied by the recurring processor on their
    day of month; the processed log, not this record, remembers whether
    a given month has already been handled.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int
    name: str = Field(..., min_length=1, max_length=200)
    vendor: str = Field(default="", max_length=200)
    amount: Decimal = Field(..., gt=0)
    day_of_month: DayOfMonth

    from_account_id: Optional[int] = None
    to_account_id: int
    to_pot_name: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.OTHER
    linked_credit_account_id: Optional[int] = None
    kind: TransactionKind = TransactionKind.SCHEDULED

    last_processed_at: Optional[datetime] = None

    @property
    def is_scheduled(self) -> bool:
        return self.kind == TransactionKind.SCHEDULED


# =============================================================================
# BALANCE REFERENCES
# =============================================================================

class BalanceRef(BaseModel):
    """
    Points at one balance: an account's own balance, or one of its pots.
    """
    model_config = ConfigDict(frozen=True)

    account_id: int
    pot_name: Optional[str] = None

    @classmethod
    def of(cls, account_id: int, pot_name: Optional[str] = None) -> 'BalanceRef':
        # Empty pot names from the UI mean "the account itself".
        return cls(account_id=account_id, pot_name=pot_name or None)

    def describe(self) -> str:
        if self.pot_name:
            return f"account #{self.account_id} pot '{self.pot_name}'"
        return f"account #{self.account_id}"
