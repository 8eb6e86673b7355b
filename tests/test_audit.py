"""
Tests for the audit logger.
"""

from decimal import Decimal

import pytest

from budget_ledger.audit import AuditLogger, create_correlation_id
from budget_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from budget_ledger.services.storage import InMemoryAuditStorage


class BrokenAuditStorage(InMemoryAuditStorage):
    """Audit storage whose writes always fail."""

    async def append_event(self, event: AuditEvent) -> bool:
        raise RuntimeError("sheet unavailable")


class TestAuditLogger:
    """Tests for AuditLogger."""

    @pytest.mark.asyncio
    async def test_log_without_storage(self):
        """Test that local-only logging reports success."""
        logger = AuditLogger()
        event = AuditEvent(event_type=AuditEventType.SYSTEM_ERROR, description="x")
        assert await logger.log(event) is True

    @pytest.mark.asyncio
    async def test_storage_failure_is_not_raised(self):
        """Test that a broken audit backend never breaks the caller."""
        logger = AuditLogger(BrokenAuditStorage())
        event = AuditEvent(event_type=AuditEventType.STATE_CLEARED, description="Cleared")
        assert await logger.log(event) is False

    @pytest.mark.asyncio
    async def test_helpers_build_expected_events(self, audit_logger, audit_storage):
        """Test the typed helper methods."""
        correlation_id = create_correlation_id()
        await audit_logger.log_schedule_created("transfer", 3, Decimal("200.00"))
        await audit_logger.log_schedule_skipped("transfer", 3, "insufficient_funds", correlation_id)
        await audit_logger.log_balance_change(1, "Rent", Decimal("25.00"), credited=False)

        created, skipped, debited = audit_storage.events
        assert created.event_type == AuditEventType.SCHEDULE_CREATED
        assert created.entity_type == "transfer_schedule"
        assert created.entity_id == 3
        assert skipped.severity == AuditSeverity.WARNING
        assert skipped.correlation_id == correlation_id
        assert debited.event_type == AuditEventType.BALANCE_DEBITED
        assert debited.description == "Debited 25.00 from pot 'Rent'"

    def test_correlation_ids_are_unique(self):
        """Test that each batch gets its own id."""
        assert create_correlation_id() != create_correlation_id()
