"""
Schedule Registry

Owns the income and transfer schedule collections and their transitions:

    add ---------> Pending --execute--> Completed
                      ^                     |
                      +-------reset---------+

Every transition runs inside one ledger mutation, so a schedule is never
marked Completed without its balance change, or the other way round.

DESIGN DECISION: At most one ACTIVE transfer schedule may target a given
destination (account, pot). Adding a second one is rejected with
DUPLICATE_DESTINATION, and reactivating a paused one is refused while
another is active. The same rule applies to income schedules per
(account, income).

Batch runs execute each schedule in its own mutation, in creation order.
A schedule that cannot run is reported and the batch moves on.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from budget_ledger.audit import AuditLogger, create_correlation_id
from budget_ledger.ledger.errors import (
    InvalidOperationError,
    LedgerError,
    NotFoundError,
)
from budget_ledger.ledger.store import (
    LedgerStore,
    find_account,
    find_holder,
)
from budget_ledger.models.audit import AuditEventType
from budget_ledger.models.commands import TransferScheduleSubmission
from budget_ledger.models.ledger import BalanceRef, to_money
from budget_ledger.models.results import (
    BatchExecutionResult,
    LegOutcome,
    ScheduleOutcome,
    ScheduleResult,
    SkippedSchedule,
)
from budget_ledger.models.schedules import (
    IncomeSchedule,
    ScheduleKind,
    TransferCandidate,
    TransferGroup,
    TransferSchedule,
    destination_key,
)
from budget_ledger.models.state import LedgerState


_LEG_TO_SCHEDULE = {
    LegOutcome.INSUFFICIENT_FUNDS: ScheduleOutcome.INSUFFICIENT_FUNDS,
    LegOutcome.CREDIT_LIMIT_EXCEEDED: ScheduleOutcome.CREDIT_LIMIT_EXCEEDED,
}


def _find_income_schedule(state: LedgerState, schedule_id: int) -> IncomeSchedule:
    for schedule in state.income_schedules:
        if schedule.id == schedule_id:
            return schedule
    raise NotFoundError(f"Income schedule #{schedule_id} not found")


def _find_transfer_schedule(state: LedgerState, schedule_id: int) -> TransferSchedule:
    for schedule in state.transfer_schedules:
        if schedule.id == schedule_id:
            return schedule
    raise NotFoundError(f"Transfer schedule #{schedule_id} not found")


def _source_ref(schedule: TransferSchedule) -> BalanceRef:
    return BalanceRef.of(schedule.from_account_id, schedule.from_pot_name)


def _destination_ref(schedule: TransferSchedule) -> BalanceRef:
    return BalanceRef.of(schedule.to_account_id, schedule.to_pot_name)


class ScheduleRegistry:
    """
    Income and transfer schedules over a LedgerStore.

    Returns ScheduleResult / BatchExecutionResult for expected outcomes;
    raises NotFoundError for unknown ids.
    """

    def __init__(
        self,
        store: LedgerStore,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._clock = clock or datetime.now

    # =========================================================================
    # INCOME SCHEDULES
    # =========================================================================

    async def add_income_schedule(self, account_id: int, income_id: int) -> ScheduleResult:
        """
        Snapshot an income into a new Pending schedule.

        Rejected with DUPLICATE_SOURCE while an active schedule already
        exists for the same (account, income).
        """
        async with self._store.mutation("add_income_schedule") as state:
            account = find_account(state, account_id)
            income = account.find_income(income_id)
            if income is None:
                raise NotFoundError(f"Income #{income_id} not found in account #{account_id}")

            duplicate = any(
                s.is_active and s.account_id == account_id and s.income_id == income_id
                for s in state.income_schedules
            )
            if duplicate:
                result = ScheduleResult(
                    outcome=ScheduleOutcome.DUPLICATE_SOURCE,
                    message=f"Income '{income.description}' is already scheduled",
                )
            else:
                schedule = IncomeSchedule(
                    id=state.allocate_id("income_schedule"),
                    account_id=account_id,
                    income_id=income.id,
                    description=income.description,
                    company=income.company,
                    amount=income.amount,
                    pot_name=income.pot_name,
                )
                state.income_schedules.append(schedule)
                result = ScheduleResult(
                    outcome=ScheduleOutcome.CREATED,
                    schedule=schedule.model_copy(deep=True),
                )

        await self._audit_added(ScheduleKind.INCOME, result)
        return result

    async def execute_income_schedule(self, schedule_id: int) -> ScheduleResult:
        """Credit the account (or pot) and mark the schedule Completed."""
        async with self._store.mutation("execute_income_schedule") as state:
            schedule = _find_income_schedule(state, schedule_id)
            outcome = self._run_income(schedule)
            result = ScheduleResult(outcome=outcome, schedule=schedule.model_copy(deep=True))

        await self._audit_executed(ScheduleKind.INCOME, schedule_id, result.outcome, schedule.amount)
        return result

    def _run_income(self, schedule: IncomeSchedule) -> ScheduleOutcome:
        if not schedule.is_active:
            return ScheduleOutcome.INACTIVE
        if schedule.is_completed:
            return ScheduleOutcome.ALREADY_COMPLETED
        self._store.credit(BalanceRef.of(schedule.account_id, schedule.pot_name), schedule.amount)
        schedule.mark_completed(self._clock())
        return ScheduleOutcome.EXECUTED

    # =========================================================================
    # TRANSFER SCHEDULES
    # =========================================================================

    async def add_transfer_schedule(self, submission: TransferScheduleSubmission) -> ScheduleResult:
        """
        Create a Pending transfer schedule with a fixed amount.

        Raises:
            NotFoundError: Source or destination does not exist
            InvalidOperationError: Linked account is not a credit account
        """
        to_pot_name = submission.to_pot_name or None
        async with self._store.mutation("add_transfer_schedule") as state:
            find_holder(state, BalanceRef.of(submission.from_account_id, submission.from_pot_name))
            find_holder(state, BalanceRef.of(submission.to_account_id, to_pot_name))
            if submission.linked_credit_account_id is not None:
                linked = find_account(state, submission.linked_credit_account_id)
                if not linked.is_credit:
                    raise InvalidOperationError(
                        f"Linked account #{linked.id} is not a credit account"
                    )

            existing = self._active_for_destination(
                state, submission.to_account_id, to_pot_name
            )
            if existing is not None:
                result = ScheduleResult(
                    outcome=ScheduleOutcome.DUPLICATE_DESTINATION,
                    message=f"Transfer schedule #{existing.id} already targets this destination",
                )
            else:
                schedule = TransferSchedule(
                    id=state.allocate_id("transfer_schedule"),
                    from_account_id=submission.from_account_id,
                    from_pot_name=submission.from_pot_name or None,
                    to_account_id=submission.to_account_id,
                    to_pot_name=to_pot_name,
                    amount=to_money(submission.amount),
                    description=submission.description,
                    linked_credit_account_id=submission.linked_credit_account_id,
                )
                state.transfer_schedules.append(schedule)
                result = ScheduleResult(
                    outcome=ScheduleOutcome.CREATED,
                    schedule=schedule.model_copy(deep=True),
                )

        await self._audit_added(ScheduleKind.TRANSFER, result)
        return result

    @staticmethod
    def _active_for_destination(
        state: LedgerState,
        to_account_id: int,
        to_pot_name: Optional[str],
        ignore_id: Optional[int] = None,
    ) -> Optional[TransferSchedule]:
        key = destination_key(to_account_id, to_pot_name)
        for schedule in state.transfer_schedules:
            if schedule.id != ignore_id and schedule.is_active and schedule.destination_key == key:
                return schedule
        return None

    def can_execute(self, schedule_id: int) -> bool:
        """True when the source balance covers the schedule amount."""
        schedule = _find_transfer_schedule(self._store.snapshot(), schedule_id)
        try:
            return self._store.balance_of(_source_ref(schedule)) >= schedule.amount
        except NotFoundError:
            return False

    async def execute_transfer_schedule(self, schedule_id: int) -> ScheduleResult:
        """
        Apply a Pending transfer.

        Insufficient funds is a no-op returning INSUFFICIENT_FUNDS; the
        schedule stays Pending.
        """
        async with self._store.mutation("execute_transfer_schedule") as state:
            schedule = _find_transfer_schedule(state, schedule_id)
            outcome = self._run_transfer(state, schedule)
            result = ScheduleResult(outcome=outcome, schedule=schedule.model_copy(deep=True))

        await self._audit_executed(ScheduleKind.TRANSFER, schedule_id, result.outcome, schedule.amount)
        return result

    def _run_transfer(self, state: LedgerState, schedule: TransferSchedule) -> ScheduleOutcome:
        if not schedule.is_active:
            return ScheduleOutcome.INACTIVE
        if schedule.is_completed:
            return ScheduleOutcome.ALREADY_COMPLETED

        leg_outcome = self._store.apply_legs(
            destination=_destination_ref(schedule),
            amount=schedule.amount,
            source=_source_ref(schedule),
            linked_credit_account_id=schedule.linked_credit_account_id,
            require_funds=True,
        )
        if leg_outcome != LegOutcome.APPLIED:
            return _LEG_TO_SCHEDULE[leg_outcome]

        now = self._clock()
        schedule.mark_completed(now)
        state.last_transfer_execution_at = now
        return ScheduleOutcome.EXECUTED

    # =========================================================================
    # BATCHES
    # =========================================================================

    async def execute_all(self, kind: ScheduleKind) -> BatchExecutionResult:
        """Run every Pending, active schedule of one kind."""
        if kind == ScheduleKind.INCOME:
            ids = [s.id for s in self._store.income_schedules() if s.is_pending]
        else:
            ids = [s.id for s in self._store.transfer_schedules() if s.is_pending]
        return await self._execute_batch(kind, ids)

    async def execute_group(self, key: str) -> BatchExecutionResult:
        """Run the Pending transfer schedules for one destination key."""
        ids = [
            s.id for s in self._store.transfer_schedules()
            if s.is_pending and s.destination_key == key
        ]
        return await self._execute_batch(ScheduleKind.TRANSFER, ids)

    async def _execute_batch(self, kind: ScheduleKind, ids: list[int]) -> BatchExecutionResult:
        batch = BatchExecutionResult()
        correlation_id = create_correlation_id()

        for schedule_id in ids:
            try:
                async with self._store.mutation(f"execute_{kind.value}_schedule") as state:
                    if kind == ScheduleKind.INCOME:
                        schedule = _find_income_schedule(state, schedule_id)
                        outcome = self._run_income(schedule)
                    else:
                        schedule = _find_transfer_schedule(state, schedule_id)
                        outcome = self._run_transfer(state, schedule)
            except LedgerError as e:
                batch.skipped.append(SkippedSchedule(
                    schedule_id=schedule_id,
                    outcome=ScheduleOutcome.FAILED,
                    message=str(e),
                ))
                if self._audit_logger:
                    await self._audit_logger.log_schedule_skipped(
                        kind.value, schedule_id, ScheduleOutcome.FAILED.value, correlation_id
                    )
                continue

            if outcome == ScheduleOutcome.EXECUTED:
                batch.executed_ids.append(schedule_id)
                if self._audit_logger:
                    await self._audit_logger.log_schedule_executed(
                        kind.value, schedule_id, schedule.amount, correlation_id
                    )
            else:
                batch.skipped.append(SkippedSchedule(schedule_id=schedule_id, outcome=outcome))
                if self._audit_logger:
                    await self._audit_logger.log_schedule_skipped(
                        kind.value, schedule_id, outcome.value, correlation_id
                    )

        return batch

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def delete_income_schedule(self, schedule_id: int) -> None:
        async with self._store.mutation("delete_income_schedule") as state:
            state.income_schedules.remove(_find_income_schedule(state, schedule_id))
        await self._audit_deleted(ScheduleKind.INCOME, schedule_id)

    async def delete_transfer_schedule(self, schedule_id: int) -> None:
        async with self._store.mutation("delete_transfer_schedule") as state:
            state.transfer_schedules.remove(_find_transfer_schedule(state, schedule_id))
        await self._audit_deleted(ScheduleKind.TRANSFER, schedule_id)

    async def set_income_active(self, schedule_id: int, active: bool) -> IncomeSchedule:
        """Pause or resume an income schedule."""
        async with self._store.mutation("set_income_active") as state:
            schedule = _find_income_schedule(state, schedule_id)
            if active and not schedule.is_active:
                clash = any(
                    s.id != schedule.id
                    and s.is_active
                    and s.account_id == schedule.account_id
                    and s.income_id == schedule.income_id
                    for s in state.income_schedules
                )
                if clash:
                    raise InvalidOperationError(
                        f"Another active schedule already pays income #{schedule.income_id}"
                    )
            schedule.is_active = active
        return schedule.model_copy(deep=True)

    async def set_transfer_active(self, schedule_id: int, active: bool) -> TransferSchedule:
        """Pause or resume a transfer schedule."""
        async with self._store.mutation("set_transfer_active") as state:
            schedule = _find_transfer_schedule(state, schedule_id)
            if active and not schedule.is_active:
                clash = self._active_for_destination(
                    state, schedule.to_account_id, schedule.to_pot_name, ignore_id=schedule.id
                )
                if clash is not None:
                    raise InvalidOperationError(
                        f"Transfer schedule #{clash.id} already targets this destination"
                    )
            schedule.is_active = active
        return schedule.model_copy(deep=True)

    # =========================================================================
    # VIEWS
    # =========================================================================

    def groups_by_destination(self) -> list[TransferGroup]:
        """Transfer schedules grouped by destination, sorted by title."""
        state = self._store.snapshot()
        names = {account.id: account.name for account in state.accounts}

        groups: dict[str, TransferGroup] = {}
        for schedule in state.transfer_schedules:
            group = groups.get(schedule.destination_key)
            if group is None:
                group = TransferGroup(
                    key=schedule.destination_key,
                    title=names.get(schedule.to_account_id, f"Account #{schedule.to_account_id}"),
                    to_account_id=schedule.to_account_id,
                    to_pot_name=schedule.to_pot_name,
                )
                groups[schedule.destination_key] = group
            group.schedules.append(schedule)

        return sorted(groups.values(), key=lambda g: (g.title, g.key))

    def transfer_candidates(self, from_account_id: int) -> list[TransferCandidate]:
        """
        What one account should send where to cover its scheduled bills.

        Scheduled records paid from the account are grouped by
        destination (account, pot) and their amounts summed.
        """
        state = self._store.snapshot()
        source = find_account(state, from_account_id)
        names = {account.id: account.name for account in state.accounts}

        grouped: dict[tuple[int, Optional[str]], TransferCandidate] = {}
        for record in state.transactions:
            if not record.is_scheduled or record.from_account_id != from_account_id:
                continue
            if record.to_account_id not in names:
                continue

            key = (record.to_account_id, record.to_pot_name or None)
            candidate = grouped.get(key)
            if candidate is None:
                candidate = TransferCandidate(
                    from_account_id=source.id,
                    from_account_name=source.name,
                    to_account_id=record.to_account_id,
                    to_account_name=names[record.to_account_id],
                    to_pot_name=record.to_pot_name or None,
                    amount=Decimal("0.00"),
                )
                grouped[key] = candidate
            candidate.amount = to_money(candidate.amount + record.amount)
            candidate.transaction_ids.append(record.id)
            candidate.transaction_names.append(record.name)

        return sorted(
            grouped.values(),
            key=lambda c: (c.destination_display_name.casefold(), -c.amount),
        )

    # =========================================================================
    # AUDIT
    # =========================================================================

    async def _audit_added(self, kind: ScheduleKind, result: ScheduleResult) -> None:
        if not self._audit_logger:
            return
        if result.outcome == ScheduleOutcome.CREATED:
            await self._audit_logger.log_schedule_created(
                kind.value, result.schedule.id, result.schedule.amount
            )
        else:
            await self._audit_logger.log_schedule_rejected(
                kind.value, result.outcome.value, result.message
            )

    async def _audit_executed(
        self,
        kind: ScheduleKind,
        schedule_id: int,
        outcome: ScheduleOutcome,
        amount: Decimal,
    ) -> None:
        if not self._audit_logger:
            return
        if outcome == ScheduleOutcome.EXECUTED:
            await self._audit_logger.log_schedule_executed(kind.value, schedule_id, amount)
        else:
            await self._audit_logger.log_schedule_skipped(kind.value, schedule_id, outcome.value)

    async def _audit_deleted(self, kind: ScheduleKind, schedule_id: int) -> None:
        if self._audit_logger:
            await self._audit_logger.log_entity_change(
                AuditEventType.SCHEDULE_DELETED,
                f"{kind.value}_schedule",
                schedule_id,
                f"Deleted {kind.value} schedule #{schedule_id}",
            )
