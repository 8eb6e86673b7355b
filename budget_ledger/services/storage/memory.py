"""
In-Memory Storage

Used by the test suite and for embedding the ledger without a disk.
State is stored serialized, so callers never share objects with the
store that saved them.
"""

from typing import Optional
from uuid import UUID

from budget_ledger.models.audit import AuditEvent
from budget_ledger.models.state import LedgerState
from budget_ledger.services.storage.interface import (
    AuditStorageInterface,
    LedgerStorageInterface,
    StorageError,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """
    Ledger storage held in a Python string.

    Set fail_saves to make every save raise StorageError, to exercise
    rollback paths.
    """

    def __init__(self, initial: Optional[LedgerState] = None):
        self._payload: Optional[str] = (
            initial.model_dump_json() if initial is not None else None
        )
        self.fail_saves = False
        self.save_count = 0

    async def load_state(self) -> Optional[LedgerState]:
        if self._payload is None:
            return None
        return LedgerState.model_validate_json(self._payload)

    async def save_state(self, state: LedgerState) -> None:
        if self.fail_saves:
            raise StorageError("Simulated storage failure")
        self._payload = state.model_dump_json()
        self.save_count += 1

    def stored_state(self) -> Optional[LedgerState]:
        """The last saved state, for assertions."""
        if self._payload is None:
            return None
        return LedgerState.model_validate_json(self._payload)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: int,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
