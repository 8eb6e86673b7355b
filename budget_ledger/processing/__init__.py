"""Recurring transaction processing package."""

from budget_ledger.processing.processor import RecurringTransactionProcessor, effective_day

__all__ = ["RecurringTransactionProcessor", "effective_day"]
