"""
Execution Log Models

Logs are append-only. They are filtered for display but never edited.

ProcessedTransactionLog doubles as the idempotency record for the
recurring sweep: one row per (payment_id, period) pair.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from budget_ledger.models.ledger import PaymentMethod


def period_of(moment: datetime) -> str:
    """Calendar period ("YYYY-MM") a moment falls in."""
    return f"{moment.year:04d}-{moment.month:02d}"


class ProcessedTransactionLog(BaseModel):
    """One execution of a scheduled transaction record."""

    id: int
    payment_id: int = Field(
        ...,
        description="ID of the transaction record that was applied"
    )
    account_id: int = Field(
        ...,
        description="Destination account of the payment"
    )
    period: str = Field(
        ...,
        pattern=r"^\d{4}-\d{2}$",
        description="Calendar period the execution counts for"
    )
    processed_at: datetime
    was_manual: bool = False

    # Denormalized for display
    name: str
    vendor: str = ""
    pot_name: Optional[str] = None
    amount: Decimal
    day: int
    payment_method: Optional[PaymentMethod] = None

    @property
    def idempotency_key(self) -> tuple[int, str]:
        return (self.payment_id, self.period)


class ProcessedTransactionSkip(BaseModel):
    """A due record the sweep did not apply, and why."""

    payment_id: int
    account_id: int
    pot_name: Optional[str] = None
    reason: str


class SweepResult(BaseModel):
    """
    Outcome of one recurring-transaction sweep.

    blocked_reason is always set when nothing was processed, so the UI
    can tell "nothing was due" apart from "processing failed".
    """

    period: str
    effective_day: int
    was_manual: bool
    processed: list[ProcessedTransactionLog] = Field(default_factory=list)
    skipped: list[ProcessedTransactionSkip] = Field(default_factory=list)
    blocked_reason: Optional[str] = None

    @property
    def processed_ids(self) -> list[int]:
        return [log.payment_id for log in self.processed]

    @property
    def did_nothing(self) -> bool:
        return not self.processed


class BalanceReductionLog(BaseModel):
    """One account's line in a monthly reduction run."""

    id: int
    timestamp: datetime = Field(
        ...,
        description="Run timestamp shared by every row of the same run"
    )
    period: str
    day_of_month: int
    account_id: int
    account_name: str
    baseline_balance: Decimal
    resulting_balance: Decimal
    reduction_amount: Decimal


class ReductionRun(BaseModel):
    """All reduction rows written by one apply_monthly_reduction call."""

    timestamp: datetime
    entries: list[BalanceReductionLog] = Field(default_factory=list)

    @property
    def total_reduction(self) -> Decimal:
        return sum((entry.reduction_amount for entry in self.entries), Decimal("0.00"))
