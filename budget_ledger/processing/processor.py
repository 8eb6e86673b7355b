"""
Recurring Transaction Processor

The monthly bill sweep. On each run it applies every scheduled
transaction record that is due today and has not already been applied
in the current calendar period.

DESIGN DECISION: The processed-transaction log is the ONLY idempotency
gate. A record is never flagged "paid"; instead a log row keyed by
(record id, period) proves it ran. Next month has a new period, so
nothing has to be reset for bills to run again.

Each record is applied in its own ledger mutation. If one record fails
(missing account, credit limit, storage error) its mutation is discarded,
it is reported as skipped, and the sweep carries on with the rest.
"""

import calendar
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from budget_ledger.audit import AuditLogger, create_correlation_id
from budget_ledger.ledger.errors import InvalidOperationError, LedgerError
from budget_ledger.ledger.store import LedgerStore, find_transaction
from budget_ledger.models.ledger import BalanceRef, TransactionRecord
from budget_ledger.models.logs import (
    ProcessedTransactionLog,
    ProcessedTransactionSkip,
    SweepResult,
    period_of,
)
from budget_ledger.models.results import LegOutcome
from budget_ledger.models.state import LedgerState


def effective_day(day_of_month: int, moment: datetime) -> int:
    """
    Day a record falls due in the month of `moment`.

    Days past the end of the month fall on its last day, so a bill
    set for the 31st runs on 30 April and 28/29 February.
    """
    last_day = calendar.monthrange(moment.year, moment.month)[1]
    return min(day_of_month, last_day)


def _already_processed(state: LedgerState, payment_id: int, period: str) -> bool:
    return any(
        log.payment_id == payment_id and log.period == period
        for log in state.processed_logs
    )


def _skip(record: TransactionRecord, reason: str) -> ProcessedTransactionSkip:
    return ProcessedTransactionSkip(
        payment_id=record.id,
        account_id=record.to_account_id,
        pot_name=record.to_pot_name,
        reason=reason,
    )


class RecurringTransactionProcessor:
    """
    Applies due scheduled transaction records once per period.

    Args:
        store: The ledger store
        audit_logger: Optional audit trail
        clock: Source of "now"; defaults to datetime.now
        require_transfer_execution: Block automatic sweeps until a
            transfer schedule has run in the current period
    """

    def __init__(
        self,
        store: LedgerStore,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
        require_transfer_execution: bool = False,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._clock = clock or datetime.now
        self._require_transfer_execution = require_transfer_execution

    async def run(self, force_manual: bool = False) -> SweepResult:
        """
        Run one sweep.

        Args:
            force_manual: Treat every scheduled record as due, regardless
                of its day of month. Idempotency still applies.
        """
        now = self._clock()
        period = period_of(now)
        result = SweepResult(period=period, effective_day=now.day, was_manual=force_manual)
        correlation_id = create_correlation_id()

        snapshot = self._store.snapshot()
        scheduled = [r for r in snapshot.transactions if r.is_scheduled]

        if not scheduled:
            result.blocked_reason = "No scheduled transactions exist"
        elif not force_manual and self._transfers_pending(snapshot, period):
            result.blocked_reason = f"Transfers have not been executed for {period}"
        else:
            await self._sweep(result, scheduled, snapshot, now, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_sweep(
                period=period,
                effective_day=result.effective_day,
                processed=len(result.processed),
                skipped=len(result.skipped),
                blocked_reason=result.blocked_reason,
                was_manual=force_manual,
                correlation_id=correlation_id,
            )
        return result

    def _transfers_pending(self, snapshot: LedgerState, period: str) -> bool:
        if not self._require_transfer_execution:
            return False
        last = snapshot.last_transfer_execution_at
        return last is None or period_of(last) != period

    async def _sweep(
        self,
        result: SweepResult,
        scheduled: list[TransactionRecord],
        snapshot: LedgerState,
        now: datetime,
        correlation_id: UUID,
    ) -> None:
        period = result.period
        due = [
            r for r in scheduled
            if result.was_manual or effective_day(r.day_of_month, now) == now.day
        ]
        if not due:
            result.blocked_reason = f"No scheduled transactions were due on day {now.day}"
            return

        pending = []
        for record in due:
            if _already_processed(snapshot, record.id, period):
                result.skipped.append(_skip(record, f"Already processed for {period}"))
            else:
                pending.append(record)

        if not pending:
            result.blocked_reason = f"All due transactions were already processed for {period}"
            return

        failures = 0
        for record in pending:
            try:
                log = await self._apply(record.id, period, now, result.was_manual)
            except LedgerError as e:
                failures += 1
                result.skipped.append(_skip(record, str(e)))
                continue

            result.processed.append(log)
            if self._audit_logger:
                await self._audit_logger.log_balance_change(
                    account_id=log.account_id,
                    pot_name=log.pot_name,
                    amount=log.amount,
                    credited=True,
                    correlation_id=correlation_id,
                )

        if not result.processed:
            result.blocked_reason = f"{failures} due transactions failed to process"

    async def _apply(
        self,
        payment_id: int,
        period: str,
        now: datetime,
        was_manual: bool,
    ) -> ProcessedTransactionLog:
        async with self._store.mutation("process_transaction") as state:
            record = find_transaction(state, payment_id)
            if _already_processed(state, payment_id, period):
                raise InvalidOperationError(f"Already processed for {period}")

            source = None
            if record.from_account_id is not None:
                source = BalanceRef.of(record.from_account_id)

            outcome = self._store.apply_legs(
                destination=BalanceRef.of(record.to_account_id, record.to_pot_name),
                amount=record.amount,
                source=source,
                linked_credit_account_id=record.linked_credit_account_id,
                require_funds=False,
            )
            if outcome != LegOutcome.APPLIED:
                raise InvalidOperationError(
                    f"Transaction '{record.name}' was not applied: {outcome.value}"
                )

            log = ProcessedTransactionLog(
                id=state.allocate_id("processed_log"),
                payment_id=record.id,
                account_id=record.to_account_id,
                period=period,
                processed_at=now,
                was_manual=was_manual,
                name=record.name,
                vendor=record.vendor,
                pot_name=record.to_pot_name,
                amount=record.amount,
                day=record.day_of_month,
                payment_method=record.payment_method,
            )
            state.processed_logs.append(log)
            record.last_processed_at = now
        return log.model_copy(deep=True)
