"""
Audit Models for the Personal Ledger

Every mutation of the ledger, every failed mutation and every change-feed
subscription is recorded as an AuditEvent. Audit logs are append-only.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ledger.models.entry import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Entry mutations
    ENTRY_CREATED = "entry_created"
    RECURRING_SERIES_CREATED = "recurring_series_created"
    ENTRY_UPDATED = "entry_updated"
    ENTRY_DELETED = "entry_deleted"
    COMPLETION_TOGGLED = "completion_toggled"
    CATEGORY_ADDED = "category_added"

    # Failures
    VALIDATION_FAILED = "validation_failed"
    SAVE_FAILED = "save_failed"
    ENTRY_NOT_FOUND = "entry_not_found"
    BATCH_ROLLED_BACK = "batch_rolled_back"

    # Synchronization
    REMOTE_SUBSCRIPTION_STARTED = "remote_subscription_started"
    REMOTE_SUBSCRIPTION_STOPPED = "remote_subscription_stopped"
    REFRESH_FAILED = "refresh_failed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'entry', 'category', 'subscription')"
    )
    entity_id: Optional[UUID] = None
    user_id: Optional[str] = None

    # Correlation - for tracking related events (e.g. one recurring series)
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None
    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "user_id": self.user_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         user_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            self.user_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.entry_created(entry_id, user_id, ...)
        event = AuditEventBuilder.save_failed("create", user_id, str(exc))
    """

    @staticmethod
    def entry_created(
        entry_id: UUID,
        user_id: str,
        entry_type: str,
        amount: str,
        period: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_CREATED,
            entity_type="entry",
            entity_id=entry_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Entry created: {entry_type} {amount} ({period})",
            details={
                "type": entry_type,
                "amount": amount,
                "period": period,
            },
            is_user_action=True,
        )

    @staticmethod
    def recurring_series_created(
        user_id: str,
        entry_ids: list[UUID],
        first_period: str,
        last_period: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_SERIES_CREATED,
            entity_type="entry_series",
            user_id=user_id,
            correlation_id=correlation_id,
            description=(
                f"Recurring series of {len(entry_ids)} entries created "
                f"({first_period} to {last_period})"
            ),
            details={
                "count": len(entry_ids),
                "entry_ids": [str(i) for i in entry_ids],
                "first_period": first_period,
                "last_period": last_period,
            },
            is_user_action=True,
        )

    @staticmethod
    def entry_updated(
        entry_id: UUID,
        user_id: str,
        fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_UPDATED,
            entity_type="entry",
            entity_id=entry_id,
            user_id=user_id,
            description=f"Entry updated: {', '.join(fields)}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def completion_toggled(
        entry_id: UUID,
        user_id: str,
        is_completed: bool,
    ) -> AuditEvent:
        state = "completed" if is_completed else "not completed"
        return AuditEvent(
            event_type=AuditEventType.COMPLETION_TOGGLED,
            entity_type="entry",
            entity_id=entry_id,
            user_id=user_id,
            description=f"Entry marked {state}",
            details={"is_completed": is_completed},
            is_user_action=True,
        )

    @staticmethod
    def entry_deleted(entry_id: UUID, user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_DELETED,
            entity_type="entry",
            entity_id=entry_id,
            user_id=user_id,
            description="Entry deleted",
            is_user_action=True,
        )

    @staticmethod
    def category_added(user_id: str, entry_type: str, name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_ADDED,
            entity_type="category",
            user_id=user_id,
            description=f"Category added: {name} ({entry_type})",
            details={"type": entry_type, "name": name},
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        user_id: Optional[str],
        operation: str,
        issues: list[dict],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id or None,
            description=f"Validation failed for {operation} with {len(issues)} issues",
            details={
                "operation": operation,
                "issues": issues,
            },
        )

    @staticmethod
    def save_failed(
        operation: str,
        user_id: str,
        error_message: str,
        entry_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="entry",
            entity_id=entry_id,
            user_id=user_id,
            description=f"Store rejected {operation}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def entry_not_found(
        operation: str,
        entry_id: UUID,
        user_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_NOT_FOUND,
            severity=AuditSeverity.WARNING,
            entity_type="entry",
            entity_id=entry_id,
            user_id=user_id,
            description=f"Entry no longer exists ({operation})",
            details={"operation": operation},
        )

    @staticmethod
    def batch_rolled_back(
        user_id: str,
        requested: int,
        inserted: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BATCH_ROLLED_BACK,
            severity=AuditSeverity.ERROR,
            entity_type="entry_series",
            user_id=user_id,
            correlation_id=correlation_id,
            description=(
                f"Partial batch insert rolled back ({inserted} of {requested})"
            ),
            details={"requested": requested, "inserted": inserted},
        )

    @staticmethod
    def remote_subscription(user_id: str, started: bool) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.REMOTE_SUBSCRIPTION_STARTED
                if started
                else AuditEventType.REMOTE_SUBSCRIPTION_STOPPED
            ),
            severity=AuditSeverity.DEBUG,
            entity_type="subscription",
            user_id=user_id,
            description=(
                "Change feed subscription started"
                if started
                else "Change feed subscription stopped"
            ),
        )

    @staticmethod
    def refresh_failed(
        user_id: str,
        period: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REFRESH_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            description=f"Refresh failed for {period}",
            error_message=error_message,
            details={"period": period},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
