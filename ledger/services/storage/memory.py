"""
In-Memory Storage Implementation

A complete Entry Store held in process memory. It backs the test suite
and the `memory` storage backend, and it implements the change feed
the way a remote store would: events are delivered later on the event
loop, never inside the mutating call.
"""

import asyncio
from collections import defaultdict
from typing import Optional
from uuid import UUID, uuid4

import structlog
from pydantic import ValidationError

from ledger.models.audit import AuditEvent
from ledger.models.entry import (
    Category,
    ChangeEvent,
    ChangeKind,
    Entry,
    NewEntry,
    utc_now,
)
from ledger.services.storage.interface import (
    AuditStorageInterface,
    ChangeHandler,
    EntryStoreInterface,
    NotFoundError,
    PersistenceError,
    UPDATABLE_FIELDS,
    Unsubscribe,
)


logger = structlog.get_logger(__name__)


class InMemoryEntryStore(EntryStoreInterface):
    """Dictionary-backed entry store with an asynchronous change feed."""

    def __init__(self):
        self._entries: dict[UUID, Entry] = {}
        self._categories: list[Category] = []
        self._handlers: dict[str, list[ChangeHandler]] = defaultdict(list)

    def __len__(self) -> int:
        return len(self._entries)

    async def query(
        self,
        user_id: str,
        year: str,
        month: Optional[str] = None,
    ) -> list[Entry]:
        entries = [
            entry for entry in self._entries.values()
            if entry.user_id == user_id
            and entry.year == year
            and (month is None or entry.month == month)
        ]
        entries.sort(key=lambda e: e.created_at)
        return entries

    async def insert(self, entries: list[NewEntry]) -> list[Entry]:
        if not entries:
            return []

        # Build every row before committing any of them
        created_at = utc_now()
        try:
            built = [self._build_entry(new, created_at) for new in entries]
        except ValidationError as e:
            raise PersistenceError(f"Failed to insert entries: {e}") from e

        for entry in built:
            self._entries[entry.id] = entry
            self._publish(entry.user_id, ChangeKind.INSERT, entry.id)
        return built

    async def update(
        self,
        entry_id: UUID,
        user_id: str,
        fields: dict,
    ) -> Entry:
        current = self._get_owned(entry_id, user_id)

        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise PersistenceError(
                f"Failed to update entry: fields not updatable: {sorted(unknown)}"
            )

        try:
            updated = Entry.model_validate({**current.model_dump(), **fields})
        except ValidationError as e:
            raise PersistenceError(f"Failed to update entry: {e}") from e

        self._entries[entry_id] = updated
        self._publish(user_id, ChangeKind.UPDATE, entry_id)
        return updated

    async def delete(self, entry_id: UUID, user_id: str) -> None:
        self._get_owned(entry_id, user_id)
        del self._entries[entry_id]
        self._publish(user_id, ChangeKind.DELETE, entry_id)

    async def subscribe_to_changes(
        self,
        user_id: str,
        handler: ChangeHandler,
    ) -> Unsubscribe:
        registration = _Registration(handler)
        self._handlers[user_id].append(registration)

        def unsubscribe() -> None:
            try:
                self._handlers[user_id].remove(registration)
            except ValueError:
                pass

        return unsubscribe

    async def list_categories(self, user_id: str) -> list[Category]:
        return [c for c in self._categories if c.user_id == user_id]

    async def add_category(self, category: Category) -> Category:
        if category not in self._categories:
            self._categories.append(category)
        return category

    def _get_owned(self, entry_id: UUID, user_id: str) -> Entry:
        entry = self._entries.get(entry_id)
        if entry is None or entry.user_id != user_id:
            raise NotFoundError(f"Entry not found: {entry_id}")
        return entry

    @staticmethod
    def _build_entry(new: NewEntry, created_at) -> Entry:
        return Entry(
            id=uuid4(),
            user_id=new.user_id,
            year=new.year,
            month=new.month,
            type=new.type.value,
            category=new.category,
            amount=new.amount,
            description=new.description,
            is_completed=new.is_completed,
            completed_at=created_at if new.is_completed else None,
            created_at=created_at,
        )

    def _publish(self, user_id: str, kind: ChangeKind, entry_id: UUID) -> None:
        registrations = list(self._handlers.get(user_id, ()))
        if not registrations:
            return
        event = ChangeEvent(user_id=user_id, kind=kind, entry_id=entry_id)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop, nobody can be listening
            return
        for registration in registrations:
            loop.call_soon(registration.deliver, event)


class _Registration:
    """One change-feed subscription. Compared by identity."""

    def __init__(self, handler: ChangeHandler):
        self.handler = handler

    def deliver(self, event: ChangeEvent) -> None:
        try:
            self.handler(event)
        except Exception:
            logger.exception(
                "change_feed_handler_failed",
                user_id=event.user_id,
                kind=event.kind.value,
            )


class InMemoryAuditStorage(AuditStorageInterface):
    """Audit storage kept in a list. Append-only."""

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
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
