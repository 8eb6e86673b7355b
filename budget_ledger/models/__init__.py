"""
Data Models Package

This package contains all Pydantic models used by the budget ledger.
All data held or returned by the engine conforms to these schemas.
"""

from budget_ledger.models.ledger import (
    Account,
    AccountKind,
    BalanceRef,
    DayOfMonth,
    Expense,
    Income,
    PaymentMethod,
    Pot,
    Target,
    TransactionKind,
    TransactionRecord,
    parse_day_of_month,
    to_money,
)
from budget_ledger.models.schedules import (
    IncomeSchedule,
    ScheduleKind,
    ScheduleStatus,
    TransferCandidate,
    TransferGroup,
    TransferSchedule,
    destination_key,
)
from budget_ledger.models.logs import (
    BalanceReductionLog,
    ProcessedTransactionLog,
    ProcessedTransactionSkip,
    ReductionRun,
    SweepResult,
    period_of,
)
from budget_ledger.models.results import (
    BatchExecutionResult,
    DebitOutcome,
    LegOutcome,
    ResetSummary,
    ScheduleOutcome,
    ScheduleResult,
    SkippedSchedule,
)
from budget_ledger.models.state import LedgerState
from budget_ledger.models.commands import (
    AccountSubmission,
    ExpenseSubmission,
    IncomeSubmission,
    PotSubmission,
    PotUpdate,
    TargetSubmission,
    TransactionSubmission,
    TransferScheduleSubmission,
)
from budget_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "AccountKind",
    "BalanceRef",
    "DayOfMonth",
    "Expense",
    "Income",
    "PaymentMethod",
    "Pot",
    "Target",
    "TransactionKind",
    "TransactionRecord",
    "parse_day_of_month",
    "to_money",
    # Schedules
    "IncomeSchedule",
    "ScheduleKind",
    "ScheduleStatus",
    "TransferCandidate",
    "TransferGroup",
    "TransferSchedule",
    "destination_key",
    # Logs
    "BalanceReductionLog",
    "ProcessedTransactionLog",
    "ProcessedTransactionSkip",
    "ReductionRun",
    "SweepResult",
    "period_of",
    # Outcomes
    "BatchExecutionResult",
    "DebitOutcome",
    "LegOutcome",
    "ResetSummary",
    "ScheduleOutcome",
    "ScheduleResult",
    "SkippedSchedule",
    # State
    "LedgerState",
    # Commands
    "AccountSubmission",
    "ExpenseSubmission",
    "IncomeSubmission",
    "PotSubmission",
    "PotUpdate",
    "TargetSubmission",
    "TransactionSubmission",
    "TransferScheduleSubmission",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
