"""Ledger store package."""

from budget_ledger.ledger.errors import (
    InvalidOperationError,
    LedgerError,
    NotFoundError,
    PersistenceError,
)
from budget_ledger.ledger.store import (
    LedgerStore,
    find_account,
    find_holder,
    find_pot,
    find_transaction,
)

__all__ = [
    "InvalidOperationError",
    "LedgerError",
    "LedgerStore",
    "NotFoundError",
    "PersistenceError",
    "find_account",
    "find_holder",
    "find_pot",
    "find_transaction",
]
