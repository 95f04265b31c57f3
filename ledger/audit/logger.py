"""
Audit Logger

Every mutation of the ledger, and every failure to mutate it, is logged.
The audit logger:
- Always logs locally through structlog
- Persists to audit storage when one is configured
- Never raises when persisting fails
- Supports correlation IDs to tie together a recurring series
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledger.models.audit import AuditEvent, AuditEventBuilder
from ledger.models.entry import Entry
from ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("ledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_entries_created(
        self,
        entries: list[Entry],
        correlation_id: UUID,
    ) -> None:
        """One event per entry, plus a series event for recurring batches."""
        for entry in entries:
            await self.log(AuditEventBuilder.entry_created(
                entry_id=entry.id,
                user_id=entry.user_id,
                entry_type=entry.type,
                amount=str(entry.amount),
                period=f"{entry.month}/{entry.year}",
                correlation_id=correlation_id,
            ))
        if len(entries) > 1:
            first, last = entries[0], entries[-1]
            await self.log(AuditEventBuilder.recurring_series_created(
                user_id=first.user_id,
                entry_ids=[entry.id for entry in entries],
                first_period=f"{first.month}/{first.year}",
                last_period=f"{last.month}/{last.year}",
                correlation_id=correlation_id,
            ))

    async def log_entry_updated(
        self,
        entry_id: UUID,
        user_id: str,
        fields: list[str],
    ) -> None:
        await self.log(AuditEventBuilder.entry_updated(entry_id, user_id, fields))

    async def log_completion_toggled(self, entry: Entry) -> None:
        await self.log(AuditEventBuilder.completion_toggled(
            entry_id=entry.id,
            user_id=entry.user_id,
            is_completed=entry.is_completed,
        ))

    async def log_entry_deleted(self, entry_id: UUID, user_id: str) -> None:
        await self.log(AuditEventBuilder.entry_deleted(entry_id, user_id))

    async def log_category_added(self, user_id: str, entry_type: str, name: str) -> None:
        await self.log(AuditEventBuilder.category_added(user_id, entry_type, name))

    async def log_validation_failed(
        self,
        user_id: Optional[str],
        operation: str,
        issues: list[dict],
    ) -> None:
        """Log validation failure."""
        await self.log(AuditEventBuilder.validation_failed(user_id, operation, issues))

    async def log_save_failed(
        self,
        operation: str,
        user_id: str,
        error_message: str,
        entry_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.save_failed(
            operation=operation,
            user_id=user_id,
            error_message=error_message,
            entry_id=entry_id,
        ))

    async def log_entry_not_found(
        self,
        operation: str,
        entry_id: UUID,
        user_id: str,
    ) -> None:
        await self.log(AuditEventBuilder.entry_not_found(operation, entry_id, user_id))

    async def log_batch_rolled_back(
        self,
        user_id: str,
        requested: int,
        inserted: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.batch_rolled_back(
            user_id=user_id,
            requested=requested,
            inserted=inserted,
            correlation_id=correlation_id,
        ))

    async def log_remote_subscription(self, user_id: str, started: bool) -> None:
        await self.log(AuditEventBuilder.remote_subscription(user_id, started))

    async def log_refresh_failed(
        self,
        user_id: str,
        period: str,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.refresh_failed(user_id, period, error_message))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., a recurring submission).
    """
    return uuid4()
