"""
Main Orchestrator for the Personal Ledger

This module ties the components together and defines the mutation flows:
1. Create (submission -> validate -> expand -> insert batch -> notify)
2. Edit, toggle completion, delete (validate -> store -> notify)
3. Categories (defaults merged with user-defined ones)

DESIGN DECISION: The orchestrator enforces the ordering rules:
- Nothing reaches the store before validation passes
- The bus is notified only after the store confirms a mutation
- A failed mutation never notifies and never changes local state
- A recurring batch lands completely or not at all
"""

from typing import NamedTuple, Optional
from uuid import UUID

import structlog

from ledger.audit import AuditLogger, create_correlation_id
from ledger.config import get_settings
from ledger.engine import expand_recurrence
from ledger.models.entry import (
    Category,
    Entry,
    EntrySubmission,
    EntryType,
    NewEntry,
    ValidationResult,
    utc_now,
)
from ledger.queries import PeriodSelection
from ledger.services.storage import (
    AuditStorageInterface,
    EntryStoreInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsEntryStore,
    InMemoryAuditStorage,
    InMemoryEntryStore,
    NotFoundError,
    PersistenceError,
)
from ledger.sync import ChangeBus
from ledger.validation import (
    EntryValidationError,
    EntryValidator,
    merge_categories,
)
from ledger.view import LedgerView


logger = structlog.get_logger(__name__)


class LedgerService:
    """
    Orchestrates every local mutation of the ledger.

    Each successful mutation calls bus.notify() exactly once, after the
    store has confirmed it. Errors propagate to the caller:
    - EntryValidationError before any store call
    - NotFoundError when the target entry no longer exists
    - PersistenceError for any other store failure
    """

    def __init__(
        self,
        store: EntryStoreInterface,
        bus: ChangeBus,
        validator: Optional[EntryValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._bus = bus
        self._validator = validator or EntryValidator()
        self._audit_logger = audit_logger

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    async def check_submission(self, submission: EntrySubmission) -> ValidationResult:
        """
        Validate a submission without saving it.

        Runs both validation stages, so unknown categories come back as
        warnings. Reads the user's categories from the store.
        """
        result = self._validator.validate_submission(submission)
        if result.has_errors:
            return result
        categories = await self._store.list_categories(submission.user_id)
        return self._validator.validate_submission(submission, categories)

    async def create_entries(
        self,
        submission: EntrySubmission,
        correlation_id: Optional[UUID] = None,
    ) -> list[Entry]:
        """
        Create a single entry or a recurring monthly series.

        Returns:
            The stored entries in chronological order

        Raises:
            InvalidRecurrenceCount: If recurrence_count is outside [1, max]
            EntryValidationError: For any other invalid field
            PersistenceError: If the batch could not be stored as a whole
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            template, year, month, count, _ = self._validator.prepare_series(submission)
        except EntryValidationError as e:
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    user_id=submission.user_id,
                    operation="create",
                    issues=[issue.model_dump() for issue in e.issues],
                )
            raise

        new_entries = expand_recurrence(
            template,
            year,
            month,
            count,
            maximum=self._validator.max_recurrence_count,
        )
        entries = await self._insert_batch(new_entries, correlation_id)

        self._bus.notify()

        logger.info(
            "entries_created",
            user_id=template.user_id,
            count=len(entries),
            correlation_id=str(correlation_id),
        )
        if self._audit_logger:
            await self._audit_logger.log_entries_created(entries, correlation_id)
        return entries

    async def _insert_batch(
        self,
        new_entries: list[NewEntry],
        correlation_id: UUID,
    ) -> list[Entry]:
        user_id = new_entries[0].user_id
        try:
            inserted = await self._store.insert(new_entries)
        except PersistenceError as e:
            if self._audit_logger:
                await self._audit_logger.log_save_failed("create", user_id, str(e))
            raise

        if len(inserted) == len(new_entries):
            return inserted

        # The store kept only part of the series: remove what it kept
        for entry in inserted:
            try:
                await self._store.delete(entry.id, entry.user_id)
            except PersistenceError as e:
                logger.error(
                    "batch_rollback_delete_failed",
                    entry_id=str(entry.id),
                    error=str(e),
                )
        if self._audit_logger:
            await self._audit_logger.log_batch_rolled_back(
                user_id=user_id,
                requested=len(new_entries),
                inserted=len(inserted),
                correlation_id=correlation_id,
            )
        raise PersistenceError(
            f"Store saved {len(inserted)} of {len(new_entries)} entries; "
            "the series was rolled back"
        )

    # -------------------------------------------------------------------------
    # Edit / complete / delete
    # -------------------------------------------------------------------------

    async def update_entry(
        self,
        entry_id: UUID,
        user_id: str,
        changes: dict,
    ) -> Entry:
        """
        Edit description, category and/or amount of an entry.

        Raises:
            EntryValidationError: If other fields are given or values are bad
        """
        try:
            update = self._validator.validate_update(changes)
        except EntryValidationError as e:
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    user_id=user_id,
                    operation="update",
                    issues=[issue.model_dump() for issue in e.issues],
                )
            raise

        fields = update.to_fields()
        entry = await self._store_update("update", entry_id, user_id, fields)

        self._bus.notify()
        if self._audit_logger:
            await self._audit_logger.log_entry_updated(entry_id, user_id, sorted(fields))
        return entry

    async def set_completion(
        self,
        entry_id: UUID,
        user_id: str,
        completed: bool,
    ) -> Entry:
        """Mark an entry completed (stamping completed_at) or not (clearing it)."""
        fields = {
            "is_completed": completed,
            "completed_at": utc_now() if completed else None,
        }
        entry = await self._store_update("toggle_completion", entry_id, user_id, fields)

        self._bus.notify()
        if self._audit_logger:
            await self._audit_logger.log_completion_toggled(entry)
        return entry

    async def toggle_completion(self, entry: Entry) -> Entry:
        """Flip an entry's completion state."""
        return await self.set_completion(entry.id, entry.user_id, not entry.is_completed)

    async def delete_entry(self, entry_id: UUID, user_id: str) -> None:
        """Delete an entry. There is no soft delete."""
        try:
            await self._store.delete(entry_id, user_id)
        except NotFoundError:
            if self._audit_logger:
                await self._audit_logger.log_entry_not_found("delete", entry_id, user_id)
            raise
        except PersistenceError as e:
            if self._audit_logger:
                await self._audit_logger.log_save_failed("delete", user_id, str(e), entry_id)
            raise

        self._bus.notify()
        if self._audit_logger:
            await self._audit_logger.log_entry_deleted(entry_id, user_id)

    async def _store_update(
        self,
        operation: str,
        entry_id: UUID,
        user_id: str,
        fields: dict,
    ) -> Entry:
        try:
            return await self._store.update(entry_id, user_id, fields)
        except NotFoundError:
            if self._audit_logger:
                await self._audit_logger.log_entry_not_found(operation, entry_id, user_id)
            raise
        except PersistenceError as e:
            if self._audit_logger:
                await self._audit_logger.log_save_failed(operation, user_id, str(e), entry_id)
            raise

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def list_categories(self, user_id: str) -> dict[EntryType, list[str]]:
        """Category names per type: built-in defaults, then the user's own."""
        return merge_categories(await self._store.list_categories(user_id))

    async def add_category(
        self,
        user_id: str,
        entry_type: EntryType,
        name: str,
    ) -> Category:
        """
        Add a user category. Names already known for that type are not
        stored again.
        """
        if not isinstance(name, (str, type(None))):
            raise EntryValidationError(f"Category name must be text, got {name!r}")
        name = (name or "").strip()
        if not user_id or not name:
            raise EntryValidationError("Category needs a user and a name")
        try:
            entry_type = EntryType(entry_type)
        except ValueError:
            raise EntryValidationError(f"Unknown entry type: {entry_type!r}") from None

        category = Category(user_id=user_id, type=entry_type, name=name)
        known = await self.list_categories(user_id)
        if name in known[category.type]:
            return category

        stored = await self._store.add_category(category)
        if self._audit_logger:
            await self._audit_logger.log_category_added(user_id, category.type.value, name)
        return stored


class AppComponents(NamedTuple):
    """Everything a front end needs, built once per process."""

    service: LedgerService
    bus: ChangeBus
    store: EntryStoreInterface
    audit_logger: AuditLogger

    async def open_view(
        self,
        user_id: Optional[str],
        selection: Optional[PeriodSelection] = None,
        debounce_seconds: Optional[float] = None,
    ) -> LedgerView:
        """Build a view wired to this process's bus and store, and open it."""
        view = LedgerView(
            self.store,
            self.bus,
            selection=selection,
            debounce_seconds=debounce_seconds,
            audit_logger=self.audit_logger,
        )
        await view.open(user_id)
        return view


def create_app_components(backend: Optional[str] = None) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        backend: "memory" or "google_sheets". Defaults to the
                 LEDGER_STORAGE_BACKEND setting. If Google Sheets cannot
                 be configured, the in-memory store is used instead.
    """
    settings = get_settings().ledger
    backend = backend or settings.storage_backend

    store: EntryStoreInterface
    audit_storage: AuditStorageInterface

    if backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            store = GoogleSheetsEntryStore(
                sheets_client,
                poll_interval_seconds=settings.change_poll_interval_seconds,
            )
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", backend=backend, error=str(e))
            store = InMemoryEntryStore()
            audit_storage = InMemoryAuditStorage()
    else:
        store = InMemoryEntryStore()
        audit_storage = InMemoryAuditStorage()

    audit_logger = AuditLogger(audit_storage)
    bus = ChangeBus()
    service = LedgerService(
        store,
        bus,
        validator=EntryValidator(settings.max_recurrence_count),
        audit_logger=audit_logger,
    )
    return AppComponents(service=service, bus=bus, store=store, audit_logger=audit_logger)
