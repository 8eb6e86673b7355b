"""Balance reset and reduction package."""

from budget_ledger.reset.policies import (
    ReductionPolicy,
    fixed,
    policy_from_settings,
    proportional,
    zero,
)
from budget_ledger.reset.service import BalanceResetService

__all__ = [
    "BalanceResetService",
    "ReductionPolicy",
    "fixed",
    "policy_from_settings",
    "proportional",
    "zero",
]
