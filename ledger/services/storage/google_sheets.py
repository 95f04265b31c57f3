"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the hosted storage backend because:
1. Users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- No push change feed: changes are detected by polling a per-user
  fingerprint of the entry rows
- No transactions: a batch is written with one append call, and rows
  of a failed batch are removed again before the error is raised
- Limited query capabilities (we filter in Python)
"""

import asyncio
import hashlib
import json
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from ledger.config import get_settings
from ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from ledger.models.entry import (
    Category,
    ChangeEvent,
    ChangeKind,
    Entry,
    EntryType,
    NewEntry,
    utc_now,
)
from ledger.services.storage.interface import (
    AuditStorageInterface,
    ChangeHandler,
    EntryStoreInterface,
    NotFoundError,
    PersistenceError,
    StoreConnectionError,
    UPDATABLE_FIELDS,
    Unsubscribe,
)


# Column mappings for Entries sheet
ENTRY_COLUMNS = [
    "id",
    "user_id",
    "year",
    "month",
    "type",
    "category",
    "amount",
    "description",
    "is_completed",
    "completed_at",
    "created_at",
]

CATEGORY_COLUMNS = [
    "user_id",
    "type",
    "name",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "user_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

logger = structlog.get_logger(__name__)


def _column_letter(count: int) -> str:
    """Spreadsheet column letter for a 1-based column count (up to 26)."""
    return chr(ord("A") + count - 1)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StoreConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StoreConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StoreConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_entries_sheet(self) -> gspread.Worksheet:
        """Get or create the Entries worksheet."""
        return self._get_or_create(
            self._settings.entries_sheet_name, ENTRY_COLUMNS, rows=1000
        )

    def get_categories_sheet(self) -> gspread.Worksheet:
        """Get or create the Categories worksheet."""
        return self._get_or_create(
            self._settings.categories_sheet_name, CATEGORY_COLUMNS, rows=200
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


class GoogleSheetsEntryStore(EntryStoreInterface):
    """
    Google Sheets implementation of the entry store.

    Entries are stored as rows in a worksheet with one entry per row.
    Reads are retried with backoff. Mutations are not: a failed
    mutation is reported to the user, who decides whether to repeat it.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        poll_interval_seconds: Optional[float] = None,
    ):
        self._client = client or GoogleSheetsClient()
        if poll_interval_seconds is None:
            poll_interval_seconds = get_settings().ledger.change_poll_interval_seconds
        self._poll_interval = poll_interval_seconds

    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------

    @staticmethod
    def _entry_to_row(entry: Entry) -> list:
        """Convert an Entry to a spreadsheet row."""
        return [
            str(entry.id),
            entry.user_id,
            entry.year,
            entry.month,
            entry.type,
            entry.category,
            str(entry.amount),
            entry.description or "",
            str(entry.is_completed),
            entry.completed_at.isoformat() if entry.completed_at else "",
            entry.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_entry(row: list) -> Entry:
        """Convert a spreadsheet row to an Entry."""
        # Handle missing columns gracefully
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return Entry(
            id=UUID(safe_get(0)),
            user_id=safe_get(1),
            year=safe_get(2),
            month=safe_get(3),
            type=safe_get(4),
            category=safe_get(5),
            amount=Decimal(safe_get(6, "0")),
            description=safe_get(7) or None,
            is_completed=safe_get(8).lower() == "true",
            completed_at=datetime.fromisoformat(safe_get(9)) if safe_get(9) else None,
            created_at=datetime.fromisoformat(safe_get(10)),
        )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _read_rows(self) -> list[list]:
        """All entry rows, header excluded."""
        try:
            return self._client.get_entries_sheet().get_all_values()[1:]
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to read entries: {e}")

    def _user_rows(self, user_id: str) -> list[list]:
        return [row for row in self._read_rows() if len(row) > 1 and row[1] == user_id]

    async def query(
        self,
        user_id: str,
        year: str,
        month: Optional[str] = None,
    ) -> list[Entry]:
        entries = []
        for row in self._user_rows(user_id):
            if len(row) < 4 or row[2] != year:
                continue
            if month is not None and row[3] != month:
                continue
            try:
                entries.append(self._row_to_entry(row))
            except Exception:
                logger.warning("malformed_entry_row", entry_id=row[0] if row else None)
                continue

        entries.sort(key=lambda e: e.created_at)
        return entries

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def insert(self, entries: list[NewEntry]) -> list[Entry]:
        if not entries:
            return []

        created_at = utc_now()
        try:
            built = [
                Entry(
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
                for new in entries
            ]
        except Exception as e:
            raise PersistenceError(f"Failed to insert entries: {e}")

        try:
            sheet = self._client.get_entries_sheet()
            sheet.append_rows(
                [self._entry_to_row(entry) for entry in built],
                value_input_option="RAW",
            )
        except Exception as e:
            # The append may have landed partially; remove whatever did
            self._remove_rows({str(entry.id) for entry in built})
            raise PersistenceError(f"Failed to insert entries: {e}")

        return built

    async def update(
        self,
        entry_id: UUID,
        user_id: str,
        fields: dict,
    ) -> Entry:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise PersistenceError(
                f"Failed to update entry: fields not updatable: {sorted(unknown)}"
            )

        try:
            sheet = self._client.get_entries_sheet()
            all_rows = sheet.get_all_values()

            # Start from 2 (row 1 is header)
            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == str(entry_id) and len(row) > 1 and row[1] == user_id:
                    current = self._row_to_entry(row)
                    updated = Entry.model_validate({**current.model_dump(), **fields})
                    end = _column_letter(len(ENTRY_COLUMNS))
                    sheet.update(
                        range_name=f"A{idx}:{end}{idx}",
                        values=[self._entry_to_row(updated)],
                        value_input_option="RAW",
                    )
                    return updated

            raise NotFoundError(f"Entry not found: {entry_id}")
        except NotFoundError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to update entry: {e}")

    async def delete(self, entry_id: UUID, user_id: str) -> None:
        try:
            sheet = self._client.get_entries_sheet()
            all_rows = sheet.get_all_values()

            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == str(entry_id) and len(row) > 1 and row[1] == user_id:
                    sheet.delete_rows(idx)
                    return

            raise NotFoundError(f"Entry not found: {entry_id}")
        except NotFoundError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to delete entry: {e}")

    def _remove_rows(self, entry_ids: set[str]) -> None:
        """Delete every row whose id is in entry_ids. Used for rollback."""
        try:
            sheet = self._client.get_entries_sheet()
            all_rows = sheet.get_all_values()
            # Bottom-up so earlier indices stay valid
            targets = [
                idx for idx, row in enumerate(all_rows[1:], start=2)
                if row and row[0] in entry_ids
            ]
            for idx in reversed(targets):
                sheet.delete_rows(idx)
            if targets:
                logger.warning("batch_rows_rolled_back", rows=len(targets))
        except Exception:
            logger.exception("batch_rollback_failed", entry_ids=sorted(entry_ids))

    # -------------------------------------------------------------------------
    # Change feed
    # -------------------------------------------------------------------------

    def _fingerprint(self, user_id: str) -> str:
        digest = hashlib.sha256()
        for row in self._user_rows(user_id):
            digest.update(json.dumps(row).encode("utf-8"))
        return digest.hexdigest()

    async def subscribe_to_changes(
        self,
        user_id: str,
        handler: ChangeHandler,
    ) -> Unsubscribe:
        baseline = await asyncio.to_thread(self._fingerprint, user_id)
        task = asyncio.create_task(self._poll(user_id, handler, baseline))

        def unsubscribe() -> None:
            task.cancel()

        return unsubscribe

    async def _poll(self, user_id: str, handler: ChangeHandler, baseline: str) -> None:
        previous = baseline
        while True:
            await asyncio.sleep(self._poll_interval)
            try:
                current = await asyncio.to_thread(self._fingerprint, user_id)
            except PersistenceError as e:
                logger.warning("change_poll_failed", user_id=user_id, error=str(e))
                continue
            if current == previous:
                continue
            previous = current
            try:
                handler(ChangeEvent(user_id=user_id, kind=ChangeKind.UNKNOWN))
            except Exception:
                logger.exception("change_feed_handler_failed", user_id=user_id)

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def list_categories(self, user_id: str) -> list[Category]:
        try:
            rows = self._client.get_categories_sheet().get_all_values()[1:]
        except Exception as e:
            raise PersistenceError(f"Failed to list categories: {e}")

        categories = []
        for row in rows:
            if len(row) < 3 or row[0] != user_id:
                continue
            try:
                categories.append(
                    Category(user_id=row[0], type=EntryType(row[1]), name=row[2])
                )
            except Exception:
                continue  # Skip malformed rows
        return categories

    async def add_category(self, category: Category) -> Category:
        try:
            sheet = self._client.get_categories_sheet()
            sheet.append_row(
                [category.user_id, category.type.value, category.name],
                value_input_option="RAW",
            )
            return category
        except Exception as e:
            raise PersistenceError(f"Failed to add category: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=UUID(safe_get(5)) if safe_get(5) else None,
            user_id=safe_get(6) or None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning("audit_append_failed", error=str(e), event_id=str(event.event_id))
            return False

    def _read_events(self) -> list[AuditEvent]:
        try:
            all_rows = self._client.get_audit_sheet().get_all_values()[1:]
        except Exception as e:
            raise PersistenceError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        # Sort chronologically
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        events = self._read_events()
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
