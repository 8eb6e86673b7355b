"""
Command Outcomes

Expected, recoverable conditions (not enough money, a schedule that
already exists) are RETURNED as typed outcomes rather than raised.
Exceptions are reserved for missing entities and storage failures.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field

from budget_ledger.models.schedules import IncomeSchedule, TransferSchedule


class LegOutcome(str, Enum):
    """Result of a multi-leg balance update."""
    APPLIED = "applied"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    CREDIT_LIMIT_EXCEEDED = "credit_limit_exceeded"


class DebitOutcome(str, Enum):
    """Result of a single debit."""
    SUCCESS = "success"
    INSUFFICIENT_FUNDS = "insufficient_funds"


class ScheduleOutcome(str, Enum):
    """Result of a schedule command."""
    CREATED = "created"
    EXECUTED = "executed"
    DUPLICATE_SOURCE = "duplicate_source"
    DUPLICATE_DESTINATION = "duplicate_destination"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    CREDIT_LIMIT_EXCEEDED = "credit_limit_exceeded"
    ALREADY_COMPLETED = "already_completed"
    INACTIVE = "inactive"
    FAILED = "failed"


class ScheduleResult(BaseModel):
    """Outcome of adding or executing a single schedule."""

    outcome: ScheduleOutcome
    schedule: Optional[Union[IncomeSchedule, TransferSchedule]] = None
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.outcome in (ScheduleOutcome.CREATED, ScheduleOutcome.EXECUTED)


class SkippedSchedule(BaseModel):
    """A schedule a batch run did not execute."""

    schedule_id: int
    outcome: ScheduleOutcome
    message: str = ""


class BatchExecutionResult(BaseModel):
    """Outcome of execute_all / execute_group."""

    executed_ids: list[int] = Field(default_factory=list)
    skipped: list[SkippedSchedule] = Field(default_factory=list)

    @property
    def executed_count(self) -> int:
        return len(self.executed_ids)


class ResetSummary(BaseModel):
    """What reset_balances touched."""

    reset_at: datetime
    accounts_reset: int = 0
    pots_reset: int = 0
    schedules_reset: int = 0
