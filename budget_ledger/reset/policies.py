"""
Monthly Reduction Policies

A reduction policy maps an account's current balance to the balance it
should have after the monthly reduction. Policies are plain callables
so callers can supply their own.
"""

from decimal import Decimal
from typing import Callable

from budget_ledger.config import LedgerSettings
from budget_ledger.models.ledger import to_money


ReductionPolicy = Callable[[Decimal], Decimal]

ZERO = Decimal("0.00")


def proportional(rate: Decimal) -> ReductionPolicy:
    """Remove `rate` (0..1) of the balance. rate=1 empties the account."""
    rate = Decimal(str(rate))
    if not Decimal("0") <= rate <= Decimal("1"):
        raise ValueError(f"Reduction rate must be between 0 and 1, got {rate}")

    def policy(balance: Decimal) -> Decimal:
        return to_money(balance * (Decimal("1") - rate))

    return policy


def fixed(amount: Decimal) -> ReductionPolicy:
    """Move the balance `amount` towards zero, never past it."""
    amount = to_money(amount)
    if amount < 0:
        raise ValueError(f"Reduction amount cannot be negative, got {amount}")

    def policy(balance: Decimal) -> Decimal:
        if balance > 0:
            return to_money(max(balance - amount, ZERO))
        if balance < 0:
            return to_money(min(balance + amount, ZERO))
        return ZERO

    return policy


def zero() -> ReductionPolicy:
    """Set every balance to zero."""

    def policy(balance: Decimal) -> Decimal:
        return ZERO

    return policy


def policy_from_settings(settings: LedgerSettings) -> ReductionPolicy:
    """Build the policy named by LEDGER_REDUCTION_POLICY."""
    if settings.reduction_policy == "fixed":
        return fixed(settings.reduction_fixed_amount)
    if settings.reduction_policy == "zero":
        return zero()
    return proportional(settings.reduction_rate)
