"""
Balance Reset / Reduction Service

Two monthly housekeeping operations:

- reset_balances(): zero every balance not marked exclude_from_reset and
  send every Completed schedule back to Pending, so next month's
  incomes and transfers can run again.
- apply_monthly_reduction(): run each non-excluded account's balance
  through a reduction policy and log the before/after per account.

DESIGN DECISION: Exclusion is per balance. An excluded account keeps its
own balance, but its pots are reset unless they are excluded themselves.
Reduction only touches account balances; pots are left alone.

Processed-transaction logs are never touched; the monthly sweep is
period-keyed and does not need resetting.
"""

from datetime import datetime
from decimal import Decimal
from itertools import groupby
from typing import Callable, Optional

from budget_ledger.audit import AuditLogger
from budget_ledger.ledger.store import LedgerStore
from budget_ledger.models.ledger import BalanceRef, to_money
from budget_ledger.models.logs import BalanceReductionLog, ReductionRun, period_of
from budget_ledger.models.results import ResetSummary
from budget_ledger.reset.policies import ReductionPolicy, proportional


class BalanceResetService:
    """Reset and reduction over a LedgerStore."""

    def __init__(
        self,
        store: LedgerStore,
        policy: Optional[ReductionPolicy] = None,
        policy_name: str = "proportional",
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._policy = policy or proportional(Decimal("1"))
        self._policy_name = policy_name
        self._audit_logger = audit_logger
        self._clock = clock or datetime.now

    async def reset_balances(self) -> ResetSummary:
        """
        Zero non-excluded balances and reactivate completed schedules.

        Running it twice leaves the same state as running it once
        (apart from last_reset_at).
        """
        summary = ResetSummary(reset_at=self._clock())

        async with self._store.mutation("reset_balances") as state:
            for account in state.accounts:
                if not account.exclude_from_reset:
                    self._store.set_balance(BalanceRef.of(account.id), Decimal("0.00"))
                    summary.accounts_reset += 1
                for pot in account.pots:
                    if pot.exclude_from_reset:
                        continue
                    self._store.set_balance(BalanceRef.of(account.id, pot.name), Decimal("0.00"))
                    summary.pots_reset += 1

            for schedule in [*state.income_schedules, *state.transfer_schedules]:
                if schedule.is_completed:
                    summary.schedules_reset += 1
                schedule.mark_pending()

            state.last_reset_at = summary.reset_at

        if self._audit_logger:
            await self._audit_logger.log_balances_reset(
                accounts_reset=summary.accounts_reset,
                pots_reset=summary.pots_reset,
                schedules_reset=summary.schedules_reset,
            )
        return summary

    async def apply_monthly_reduction(self) -> ReductionRun:
        """
        Apply the reduction policy to every non-excluded account.

        Writes one BalanceReductionLog per account, all sharing the
        run's timestamp. Pot balances are not reduced.
        """
        now = self._clock()
        run = ReductionRun(timestamp=now)

        async with self._store.mutation("apply_monthly_reduction") as state:
            for account in state.accounts:
                if account.exclude_from_reset:
                    continue
                baseline = account.balance
                resulting = to_money(self._policy(baseline))
                self._store.set_balance(BalanceRef.of(account.id), resulting)

                entry = BalanceReductionLog(
                    id=state.allocate_id("reduction_log"),
                    timestamp=now,
                    period=period_of(now),
                    day_of_month=now.day,
                    account_id=account.id,
                    account_name=account.name,
                    baseline_balance=baseline,
                    resulting_balance=resulting,
                    reduction_amount=to_money(baseline - resulting),
                )
                state.reduction_logs.append(entry)
                run.entries.append(entry.model_copy())

        if self._audit_logger:
            await self._audit_logger.log_reduction(
                policy=self._policy_name,
                accounts=len(run.entries),
                total_reduction=run.total_reduction,
            )
        return run

    def reduction_runs(self) -> list[ReductionRun]:
        """Reduction history grouped into runs, newest first."""
        logs = sorted(
            self._store.reduction_logs(),
            key=lambda log: (log.timestamp, log.id),
            reverse=True,
        )
        return [
            ReductionRun(timestamp=timestamp, entries=sorted(entries, key=lambda e: e.id))
            for timestamp, entries in groupby(logs, key=lambda log: log.timestamp)
        ]
