"""
Storage Services Package

Provides the abstract Entry Store interface and its implementations.
The in-memory store backs tests and local use; Google Sheets is the
hosted backend. Both are swappable behind EntryStoreInterface.
"""

from ledger.services.storage.interface import (
    UPDATABLE_FIELDS,
    AuditStorageInterface,
    ChangeHandler,
    EntryStoreInterface,
    NotFoundError,
    PersistenceError,
    StoreConnectionError,
    Unsubscribe,
)
from ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryEntryStore,
)
from ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsEntryStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ChangeHandler",
    "EntryStoreInterface",
    "UPDATABLE_FIELDS",
    "Unsubscribe",
    # Exceptions
    "NotFoundError",
    "PersistenceError",
    "StoreConnectionError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryEntryStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsEntryStore",
]
