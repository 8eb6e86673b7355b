"""
Persisted Ledger State

LedgerState is the single aggregate the storage layer reads and writes.
Everything the engine needs to survive a restart lives here: entity
identity, schedule flags, and the full processed-transaction history
that makes the monthly sweep idempotent across restarts.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from budget_ledger.models.ledger import Account, TransactionRecord
from budget_ledger.models.logs import BalanceReductionLog, ProcessedTransactionLog
from budget_ledger.models.schedules import IncomeSchedule, TransferSchedule


class LedgerState(BaseModel):
    """Everything the ledger store owns."""

    accounts: list[Account] = Field(default_factory=list)
    transactions: list[TransactionRecord] = Field(default_factory=list)
    income_schedules: list[IncomeSchedule] = Field(default_factory=list)
    transfer_schedules: list[TransferSchedule] = Field(default_factory=list)
    processed_logs: list[ProcessedTransactionLog] = Field(default_factory=list)
    reduction_logs: list[BalanceReductionLog] = Field(default_factory=list)

    last_reset_at: Optional[datetime] = None
    last_transfer_execution_at: Optional[datetime] = None

    # ID counters
    next_account_id: int = 1
    next_pot_id: int = 1
    next_income_id: int = 1
    next_target_id: int = 1
    next_expense_id: int = 1
    next_transaction_id: int = 1
    next_income_schedule_id: int = 1
    next_transfer_schedule_id: int = 1
    next_processed_log_id: int = 1
    next_reduction_log_id: int = 1

    def allocate_id(self, counter: str) -> int:
        """Hand out the next id for a counter such as 'account'."""
        field = f"next_{counter}_id"
        value = getattr(self, field)
        setattr(self, field, value + 1)
        return value

    def normalized(self) -> 'LedgerState':
        """
        Return a copy whose counters exceed every id already in use.

        Imported or hand-edited state can carry counters that lag
        behind its data; this keeps ids unique.
        """
        state = self.model_copy(deep=True)

        def bump(counter: str, ids) -> None:
            field = f"next_{counter}_id"
            highest = max(ids, default=0)
            setattr(state, field, max(getattr(state, field), highest + 1))

        bump("account", (a.id for a in state.accounts))
        bump("pot", (p.id for a in state.accounts for p in a.pots))
        bump("income", (i.id for a in state.accounts for i in a.incomes))
        # Schedules may outlive their income; never reuse those ids either
        bump("income", (s.income_id for s in state.income_schedules))
        bump("target", (t.id for a in state.accounts for t in a.targets))
        bump("expense", (e.id for a in state.accounts for e in a.expenses))
        bump("transaction", (t.id for t in state.transactions))
        bump("income_schedule", (s.id for s in state.income_schedules))
        bump("transfer_schedule", (s.id for s in state.transfer_schedules))
        bump("processed_log", (log.id for log in state.processed_logs))
        bump("reduction_log", (log.id for log in state.reduction_logs))
        return state
