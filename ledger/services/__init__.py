"""Services package."""

from ledger.services.storage import (
    AuditStorageInterface,
    EntryStoreInterface,
    InMemoryAuditStorage,
    InMemoryEntryStore,
    NotFoundError,
    PersistenceError,
    StoreConnectionError,
)

__all__ = [
    "AuditStorageInterface",
    "EntryStoreInterface",
    "InMemoryAuditStorage",
    "InMemoryEntryStore",
    "NotFoundError",
    "PersistenceError",
    "StoreConnectionError",
]
