"""Schedule registry package."""

from budget_ledger.schedules.registry import ScheduleRegistry

__all__ = ["ScheduleRegistry"]
