"""
Ledger Exceptions

Raised for conditions a caller cannot treat as a normal outcome.
Expected business results (insufficient funds, duplicate schedules) are
returned as outcome enums instead; see budget_ledger.models.results.
"""


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class NotFoundError(LedgerError):
    """An account, pot, income, record or schedule does not exist."""
    pass


class InvalidOperationError(LedgerError):
    """A well-formed command that the ledger cannot carry out."""
    pass


class PersistenceError(LedgerError):
    """
    Ledger state could not be saved.

    The mutation that triggered the save has been discarded; in-memory
    state is unchanged.
    """
    pass
