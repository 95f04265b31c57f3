"""
Shared fixtures for the ledger tests.

No test touches the network: stores are in-memory, Google Sheets is faked
at the worksheet level.
"""

import asyncio
from typing import Optional

import pytest

from ledger.audit import AuditLogger
from ledger.models.entry import Entry, EntrySubmission, NewEntry
from ledger.orchestrator import LedgerService
from ledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryEntryStore,
    PersistenceError,
)
from ledger.sync import ChangeBus
from ledger.validation import EntryValidator


class FlakyStore(InMemoryEntryStore):
    """In-memory store that can be told to fail."""

    def __init__(self):
        super().__init__()
        self.fail_queries = False
        self.fail_inserts = False
        self.drop_last_insert = False

    async def query(self, user_id: str, year: str, month: Optional[str] = None) -> list[Entry]:
        if self.fail_queries:
            raise PersistenceError("store offline")
        return await super().query(user_id, year, month)

    async def insert(self, entries: list[NewEntry]) -> list[Entry]:
        if self.fail_inserts:
            raise PersistenceError("constraint violation")
        if self.drop_last_insert:
            return await super().insert(entries[:-1])
        return await super().insert(entries)


class GatedStore(InMemoryEntryStore):
    """In-memory store whose queries wait until the test opens their gate."""

    def __init__(self):
        super().__init__()
        self.blocking = False
        self._gates: dict[tuple, asyncio.Event] = {}
        self.started: list[tuple] = []

    def gate(self, year: str, month: Optional[str]) -> asyncio.Event:
        return self._gates.setdefault((year, month), asyncio.Event())

    async def query(self, user_id: str, year: str, month: Optional[str] = None) -> list[Entry]:
        self.started.append((year, month))
        if self.blocking:
            await self.gate(year, month).wait()
        return await super().query(user_id, year, month)


class CallCounter:
    """Zero-argument callback that counts its calls."""

    def __init__(self):
        self.calls = 0

    def __call__(self) -> None:
        self.calls += 1


def make_submission(**overrides) -> EntrySubmission:
    fields = {
        "user_id": "user-1",
        "year": "2024",
        "month": "Janeiro",
        "type": "despesa",
        "category": "Moradia",
        "amount": "1500,00",
        "description": "Aluguel",
        "recurrence_count": 1,
    }
    fields.update(overrides)
    return EntrySubmission(**fields)


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def bus():
    return ChangeBus()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def service(store, bus, audit_storage):
    return LedgerService(
        store,
        bus,
        validator=EntryValidator(max_recurrence_count=60),
        audit_logger=AuditLogger(audit_storage),
    )


@pytest.fixture
def bus_counter(bus):
    counter = CallCounter()
    bus.subscribe(counter)
    return counter
