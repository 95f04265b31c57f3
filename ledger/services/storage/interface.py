"""
Abstract Storage Interface

DESIGN DECISION: The ledger core never talks to a database directly.
The Entry Store is an external collaborator behind this interface, so that:
1. The Google Sheets backend can be swapped for another store
2. Tests use the in-memory store
3. The engine and views stay free of persistence details

The store is the single source of truth. Every mutation round-trips to it
before anything else reacts, and every refresh re-reads from it.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional
from uuid import UUID

from ledger.models.audit import AuditEvent
from ledger.models.entry import (
    EDITABLE_FIELDS,
    Category,
    ChangeEvent,
    Entry,
    NewEntry,
)


ChangeHandler = Callable[[ChangeEvent], None]
Unsubscribe = Callable[[], None]

# Fields a store update may touch. Everything else is fixed at creation.
UPDATABLE_FIELDS = EDITABLE_FIELDS | {"is_completed", "completed_at"}


class EntryStoreInterface(ABC):
    """
    Abstract interface for ledger entry storage.

    Any storage implementation must implement these methods.
    All entry operations are scoped to the owning user.
    """

    @abstractmethod
    async def query(
        self,
        user_id: str,
        year: str,
        month: Optional[str] = None,
    ) -> list[Entry]:
        """
        List a user's entries for a year, optionally a single month.

        Args:
            user_id: Owning user
            year: 4-digit year
            month: Canonical month name, or None for the whole year

        Returns:
            Matching entries in creation order

        Raises:
            PersistenceError: If the store cannot be read
        """
        pass

    @abstractmethod
    async def insert(self, entries: list[NewEntry]) -> list[Entry]:
        """
        Insert one or more entries as a single all-or-nothing request.

        Returns:
            The inserted entries, in the order given, with ids assigned

        Raises:
            PersistenceError: If any entry could not be stored. In that
                case none of them may remain in the store.
        """
        pass

    @abstractmethod
    async def update(
        self,
        entry_id: UUID,
        user_id: str,
        fields: dict,
    ) -> Entry:
        """
        Apply a partial update to one entry.

        Raises:
            NotFoundError: If no entry matches id and user
            PersistenceError: If the update fails otherwise
        """
        pass

    @abstractmethod
    async def delete(self, entry_id: UUID, user_id: str) -> None:
        """
        Delete one entry.

        Raises:
            NotFoundError: If no entry matches id and user
            PersistenceError: If the delete fails otherwise
        """
        pass

    @abstractmethod
    async def subscribe_to_changes(
        self,
        user_id: str,
        handler: ChangeHandler,
    ) -> Unsubscribe:
        """
        Subscribe to the change feed for one user's entries.

        Delivery is at-least-once. The handler is called on the event
        loop; the event carries no guaranteed payload beyond the user.

        Returns:
            A function that ends the subscription. Calling it more than
            once is a no-op.
        """
        pass

    @abstractmethod
    async def list_categories(self, user_id: str) -> list[Category]:
        """
        List user-defined categories (built-in defaults excluded).
        """
        pass

    @abstractmethod
    async def add_category(self, category: Category) -> Category:
        """
        Store a user-defined category.

        Raises:
            PersistenceError: If the store rejects it
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
        Get all events for a correlation ID (e.g., one recurring series).

        Returns:
            List of related events in chronological order
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


class PersistenceError(Exception):
    """Base exception for store operations."""
    pass


class NotFoundError(PersistenceError):
    """The target entry does not exist for that user."""
    pass


class StoreConnectionError(PersistenceError):
    """Could not connect to storage backend."""
    pass
