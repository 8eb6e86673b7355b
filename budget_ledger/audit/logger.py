"""
Audit Logger

DESIGN DECISION: Every balance-changing action in the ledger is logged.
The audit logger:
- Is async so it can share the engine's event loop
- Never fails a ledger operation because an audit write failed
- Supports correlation IDs so one sweep's events can be traced together
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from budget_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from budget_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit storage backend, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("budget_ledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_entity_change(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: Optional[int],
        description: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log a create/update/delete of a ledger entity."""
        await self.log(AuditEventBuilder.entity_changed(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            details=details,
        ))

    async def log_balance_change(
        self,
        account_id: int,
        pot_name: Optional[str],
        amount: Decimal,
        credited: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.balance_changed(
            account_id=account_id,
            pot_name=pot_name,
            amount=amount,
            credited=credited,
            correlation_id=correlation_id,
        ))

    async def log_schedule_created(
        self,
        schedule_kind: str,
        schedule_id: int,
        amount: Decimal,
    ) -> None:
        await self.log(AuditEventBuilder.schedule_created(
            schedule_kind=schedule_kind,
            schedule_id=schedule_id,
            amount=amount,
        ))

    async def log_schedule_rejected(
        self,
        schedule_kind: str,
        outcome: str,
        message: str,
    ) -> None:
        await self.log(AuditEventBuilder.schedule_rejected(
            schedule_kind=schedule_kind,
            outcome=outcome,
            message=message,
        ))

    async def log_schedule_executed(
        self,
        schedule_kind: str,
        schedule_id: int,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.schedule_executed(
            schedule_kind=schedule_kind,
            schedule_id=schedule_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_schedule_skipped(
        self,
        schedule_kind: str,
        schedule_id: int,
        outcome: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.schedule_skipped(
            schedule_kind=schedule_kind,
            schedule_id=schedule_id,
            outcome=outcome,
            correlation_id=correlation_id,
        ))

    async def log_sweep(
        self,
        period: str,
        effective_day: int,
        processed: int,
        skipped: int,
        blocked_reason: Optional[str],
        was_manual: bool,
        correlation_id: UUID,
    ) -> None:
        """Log the outcome of a recurring-transaction sweep."""
        await self.log(AuditEventBuilder.sweep_finished(
            period=period,
            effective_day=effective_day,
            processed=processed,
            skipped=skipped,
            blocked_reason=blocked_reason,
            was_manual=was_manual,
            correlation_id=correlation_id,
        ))

    async def log_balances_reset(
        self,
        accounts_reset: int,
        pots_reset: int,
        schedules_reset: int,
    ) -> None:
        await self.log(AuditEventBuilder.balances_reset(
            accounts_reset=accounts_reset,
            pots_reset=pots_reset,
            schedules_reset=schedules_reset,
        ))

    async def log_reduction(
        self,
        policy: str,
        accounts: int,
        total_reduction: Decimal,
    ) -> None:
        await self.log(AuditEventBuilder.reduction_applied(
            policy=policy,
            accounts=accounts,
            total_reduction=total_reduction,
        ))

    async def log_persistence_failed(self, operation: str, error_message: str) -> None:
        """Log a failed state write."""
        await self.log(AuditEventBuilder.persistence_failed(
            operation=operation,
            error_message=error_message,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a batch operation (e.g., a sweep) and pass
    it to every event the batch emits.
    """
    return uuid4()
