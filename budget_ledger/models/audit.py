"""
Audit Models for Budget Ledger

Every balance-changing action in the ledger is logged for audit purposes.
This provides:
1. Traceability of every credit, debit and schedule execution
2. Debugging information when a sweep skips a payment
3. The ability to reconstruct how a balance got where it is

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Each engine operation that touches balances or schedules has its own
    event type.
    """
    # Entity management
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"
    POT_CREATED = "pot_created"
    POT_UPDATED = "pot_updated"
    POT_DELETED = "pot_deleted"
    INCOME_SAVED = "income_saved"
    INCOME_DELETED = "income_deleted"
    TARGET_SAVED = "target_saved"
    TARGET_DELETED = "target_deleted"
    EXPENSE_SAVED = "expense_saved"
    EXPENSE_DELETED = "expense_deleted"
    TRANSACTION_SAVED = "transaction_saved"
    TRANSACTION_DELETED = "transaction_deleted"

    # Balance operations
    BALANCE_CREDITED = "balance_credited"
    BALANCE_DEBITED = "balance_debited"

    # Schedules
    SCHEDULE_CREATED = "schedule_created"
    SCHEDULE_REJECTED = "schedule_rejected"
    SCHEDULE_EXECUTED = "schedule_executed"
    SCHEDULE_SKIPPED = "schedule_skipped"
    SCHEDULE_DELETED = "schedule_deleted"

    # Recurring sweep
    SWEEP_COMPLETED = "sweep_completed"
    SWEEP_BLOCKED = "sweep_blocked"

    # Monthly cycle
    BALANCES_RESET = "balances_reset"
    REDUCTION_APPLIED = "reduction_applied"

    # Data management
    STATE_IMPORTED = "state_imported"
    STATE_CLEARED = "state_cleared"

    # System events
    PERSISTENCE_FAILED = "persistence_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, UUID)):
        return str(value)
    return value


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'transfer_schedule')"
    )
    entity_id: Optional[int] = Field(
        default=None,
        description="Ledger ID of the entity this event relates to"
    )

    # Correlation - e.g. every event emitted by one sweep
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": {k: _jsonable(v) for k, v in self.details.items()},
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id is not None else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.entity_changed(AuditEventType.POT_CREATED, "pot", 3, "Created pot Bills")
        event = AuditEventBuilder.schedule_executed("transfer", 7, amount)
    """

    @staticmethod
    def entity_changed(
        event_type: AuditEventType,
        entity_type: str,
        entity_id: Optional[int],
        description: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def balance_changed(
        account_id: int,
        pot_name: Optional[str],
        amount: Decimal,
        credited: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        verb = "Credited" if credited else "Debited"
        target = f"pot '{pot_name}'" if pot_name else "account"
        return AuditEvent(
            event_type=(
                AuditEventType.BALANCE_CREDITED
                if credited
                else AuditEventType.BALANCE_DEBITED
            ),
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"{verb} {amount} to {target}" if credited else f"{verb} {amount} from {target}",
            details={
                "pot_name": pot_name,
                "amount": str(amount),
            },
        )

    @staticmethod
    def schedule_created(
        schedule_kind: str,
        schedule_id: int,
        amount: Decimal,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULE_CREATED,
            entity_type=f"{schedule_kind}_schedule",
            entity_id=schedule_id,
            description=f"Created {schedule_kind} schedule for {amount}",
            details={"amount": str(amount)},
            is_user_action=True,
        )

    @staticmethod
    def schedule_rejected(
        schedule_kind: str,
        outcome: str,
        message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULE_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type=f"{schedule_kind}_schedule",
            description=f"Rejected {schedule_kind} schedule: {outcome}",
            details={"outcome": outcome, "message": message},
            is_user_action=True,
        )

    @staticmethod
    def schedule_executed(
        schedule_kind: str,
        schedule_id: int,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULE_EXECUTED,
            entity_type=f"{schedule_kind}_schedule",
            entity_id=schedule_id,
            correlation_id=correlation_id,
            description=f"Executed {schedule_kind} schedule for {amount}",
            details={"amount": str(amount)},
        )

    @staticmethod
    def schedule_skipped(
        schedule_kind: str,
        schedule_id: int,
        outcome: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULE_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_type=f"{schedule_kind}_schedule",
            entity_id=schedule_id,
            correlation_id=correlation_id,
            description=f"Skipped {schedule_kind} schedule: {outcome}",
            details={"outcome": outcome},
        )

    @staticmethod
    def sweep_finished(
        period: str,
        effective_day: int,
        processed: int,
        skipped: int,
        blocked_reason: Optional[str],
        was_manual: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        if blocked_reason:
            return AuditEvent(
                event_type=AuditEventType.SWEEP_BLOCKED,
                severity=AuditSeverity.WARNING,
                entity_type="sweep",
                correlation_id=correlation_id,
                description=f"Sweep for {period} day {effective_day} did nothing: {blocked_reason}",
                details={
                    "period": period,
                    "effective_day": effective_day,
                    "skipped": skipped,
                    "blocked_reason": blocked_reason,
                },
                is_user_action=was_manual,
            )
        return AuditEvent(
            event_type=AuditEventType.SWEEP_COMPLETED,
            entity_type="sweep",
            correlation_id=correlation_id,
            description=f"Sweep for {period} day {effective_day} processed {processed} transactions",
            details={
                "period": period,
                "effective_day": effective_day,
                "processed": processed,
                "skipped": skipped,
            },
            is_user_action=was_manual,
        )

    @staticmethod
    def balances_reset(accounts_reset: int, pots_reset: int, schedules_reset: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCES_RESET,
            entity_type="ledger",
            description=f"Reset {accounts_reset} accounts and {pots_reset} pots",
            details={
                "accounts_reset": accounts_reset,
                "pots_reset": pots_reset,
                "schedules_reset": schedules_reset,
            },
            is_user_action=True,
        )

    @staticmethod
    def reduction_applied(policy: str, accounts: int, total_reduction: Decimal) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REDUCTION_APPLIED,
            entity_type="ledger",
            description=f"Applied {policy} reduction to {accounts} accounts",
            details={
                "policy": policy,
                "accounts": accounts,
                "total_reduction": str(total_reduction),
            },
        )

    @staticmethod
    def persistence_failed(operation: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSISTENCE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="ledger",
            description=f"Could not persist ledger state during {operation}",
            error_message=error_message,
            details={"operation": operation},
        )
