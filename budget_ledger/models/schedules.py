"""
Schedule Models

Income and transfer schedules are small state machines:

    Pending --execute--> Completed --reset--> Pending
    any state --delete--> removed

DESIGN DECISION: Schedules hold a SNAPSHOT of the values they were
created from. Editing an income after scheduling it does not change
the schedule; the income_id is a back-reference only.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ScheduleKind(str, Enum):
    """The two schedule collections held by the registry."""
    INCOME = "income"
    TRANSFER = "transfer"


class ScheduleStatus(str, Enum):
    """Derived lifecycle state of a schedule."""
    PENDING = "pending"
    COMPLETED = "completed"


class _ScheduleBase(BaseModel):
    """Fields and transitions shared by both schedule kinds."""

    id: int
    is_active: bool = True
    is_completed: bool = False
    last_executed: Optional[datetime] = None

    @property
    def status(self) -> ScheduleStatus:
        return ScheduleStatus.COMPLETED if self.is_completed else ScheduleStatus.PENDING

    @property
    def is_pending(self) -> bool:
        return self.is_active and not self.is_completed

    def mark_completed(self, at: datetime) -> None:
        self.is_completed = True
        self.last_executed = at

    def mark_pending(self) -> None:
        self.is_completed = False
        self.last_executed = None


class IncomeSchedule(_ScheduleBase):
    """An income copied into the schedule list, waiting to be paid in."""
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: int
    income_id: int = Field(
        ...,
        description="Back-reference to the income this was copied from"
    )
    description: str
    company: str = ""
    amount: Decimal = Field(..., gt=0)
    pot_name: Optional[str] = None


class TransferSchedule(_ScheduleBase):
    """
    A fixed-amount transfer from one balance to another.

    The amount is frozen at creation (usually the sum of the bills
    the destination has to cover).
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    from_account_id: int
    from_pot_name: Optional[str] = None
    to_account_id: int
    to_pot_name: Optional[str] = None
    amount: Decimal = Field(..., gt=0)
    description: str = ""
    linked_credit_account_id: Optional[int] = None

    @property
    def destination_key(self) -> str:
        return destination_key(self.to_account_id, self.to_pot_name)


def destination_key(to_account_id: int, to_pot_name: Optional[str] = None) -> str:
    """Group key for transfer schedules sharing a destination."""
    return f"to-{to_account_id}-{to_pot_name or 'account'}"


class TransferGroup(BaseModel):
    """Transfer schedules sharing one destination."""

    key: str
    title: str
    to_account_id: int
    to_pot_name: Optional[str] = None
    schedules: list[TransferSchedule] = Field(default_factory=list)

    @property
    def pending(self) -> list[TransferSchedule]:
        return [s for s in self.schedules if s.is_pending]

    @property
    def total_amount(self) -> Decimal:
        return sum((s.amount for s in self.schedules), Decimal("0.00"))


class TransferCandidate(BaseModel):
    """
    A suggested transfer: what one account must send to a destination
    to cover the scheduled bills it pays there.
    """

    from_account_id: int
    from_account_name: str
    to_account_id: int
    to_account_name: str
    to_pot_name: Optional[str] = None
    amount: Decimal
    transaction_ids: list[int] = Field(default_factory=list)
    transaction_names: list[str] = Field(default_factory=list)

    @property
    def destination_key(self) -> str:
        return destination_key(self.to_account_id, self.to_pot_name)

    @property
    def destination_display_name(self) -> str:
        return self.to_pot_name or self.to_account_name

    @property
    def summary(self) -> str:
        return ", ".join(self.transaction_names)
