"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep ledger state in a local JSON file today
2. Use in-memory storage for testing
3. Swap the audit trail between local-only and Google Sheets

The interface is intentionally small. The ledger holds its whole state
in memory and persists it as one snapshot, so storage only ever loads
and saves that snapshot.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from budget_ledger.models.audit import AuditEvent
from budget_ledger.models.state import LedgerState


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger state persistence.

    Any backend (JSON file, database, etc.) must implement these methods.
    """

    @abstractmethod
    async def load_state(self) -> Optional[LedgerState]:
        """
        Load the persisted ledger state.

        Returns:
            The stored state, or None if nothing has been saved yet

        Raises:
            StorageError: If stored data exists but cannot be read
        """
        pass

    @abstractmethod
    async def save_state(self, state: LedgerState) -> None:
        """
        Replace the persisted ledger state.

        A save either fully succeeds or leaves the previous snapshot
        untouched.

        Raises:
            StorageError: If the state could not be written
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one sweep).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: int,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'account', 'transfer_schedule')
            entity_id: The entity's ledger ID

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
