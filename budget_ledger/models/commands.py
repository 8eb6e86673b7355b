"""
Command Submission Models

What the UI sends in. The command surface validates the SHAPE of every
command here (types, ranges, required fields) before the ledger sees it.
Whether referenced accounts and pots exist is checked by the store.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from budget_ledger.models.ledger import (
    AccountKind,
    DayOfMonth,
    PaymentMethod,
    TransactionKind,
)


class AccountSubmission(BaseModel):
    """Create or update an account."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    kind: AccountKind
    balance: Decimal = Field(
        default=Decimal("0.00"),
        decimal_places=2,
        description="Starting balance (signed)"
    )
    category: Optional[str] = Field(default=None, max_length=50)
    credit_limit: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    exclude_from_reset: bool = False

    @model_validator(mode='after')
    def validate_credit_limit(self) -> 'AccountSubmission':
        if self.kind == AccountKind.CREDIT and self.credit_limit is None:
            raise ValueError("Credit accounts require a credit limit")
        if self.kind != AccountKind.CREDIT and self.credit_limit is not None:
            raise ValueError("Only credit accounts may have a credit limit")
        return self


class PotSubmission(BaseModel):
    """Create a pot."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    balance: Decimal = Field(default=Decimal("0.00"), decimal_places=2)
    exclude_from_reset: bool = False


class PotUpdate(BaseModel):
    """Partial pot update; omitted fields keep their value."""
    model_config = ConfigDict(str_strip_whitespace=True)

    new_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    new_balance: Optional[Decimal] = Field(default=None, decimal_places=2)
    exclude_from_reset: Optional[bool] = None


class IncomeSubmission(BaseModel):
    """Create or update an income."""
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = Field(..., min_length=1, max_length=200)
    company: str = Field(default="", max_length=200)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    day_of_month: DayOfMonth
    pot_name: Optional[str] = None


class ExpenseSubmission(BaseModel):
    """Create or update an account expense."""
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=200)
    date: Optional[datetime] = Field(
        default=None,
        description="When the money was spent; defaults to now on create"
    )
    to_account_id: Optional[int] = None
    to_pot_name: Optional[str] = None


class TransactionSubmission(BaseModel):
    """Create or update a transaction record."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    vendor: str = Field(default="", max_length=200)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    day_of_month: DayOfMonth
    from_account_id: Optional[int] = None
    to_account_id: int
    to_pot_name: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.OTHER
    linked_credit_account_id: Optional[int] = None
    kind: TransactionKind = TransactionKind.SCHEDULED


class TargetSubmission(BaseModel):
    """Create or update a budget target."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., ge=0, decimal_places=2)
    day_of_month: DayOfMonth


class TransferScheduleSubmission(BaseModel):
    """
    Schedule a transfer.

    amount is a snapshot supplied by the caller, typically the amount
    of a transfer candidate (the bills the destination must cover).
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    from_account_id: int
    from_pot_name: Optional[str] = None
    to_account_id: int
    to_pot_name: Optional[str] = None
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: str = Field(default="", max_length=200)
    linked_credit_account_id: Optional[int] = None
