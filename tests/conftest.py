"""
Shared fixtures.

Every test runs against in-memory storage and a frozen clock, so no
test touches the network or depends on today's date.
"""

from datetime import datetime

import pytest
import pytest_asyncio

from budget_ledger.audit import AuditLogger
from budget_ledger.ledger import LedgerStore
from budget_ledger.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


class FrozenClock:
    """Callable clock whose time only moves when a test moves it."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 5, 15, 9, 30))


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest_asyncio.fixture
async def store(storage):
    return await LedgerStore.open(storage)
