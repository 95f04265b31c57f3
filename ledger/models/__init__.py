"""
Data Models Package

This package contains all Pydantic models used by the ledger.
All data flowing between store, engine and views conforms to these schemas.
"""

from ledger.models.entry import (
    ALL_MONTHS,
    DEFAULT_CATEGORIES,
    EDITABLE_FIELDS,
    MONTHS,
    Category,
    ChangeEvent,
    ChangeKind,
    CompletionStats,
    Entry,
    EntryQuery,
    EntrySubmission,
    EntryTemplate,
    EntryType,
    EntryUpdate,
    NewEntry,
    PeriodReport,
    Summary,
    ValidationIssue,
    ValidationResult,
    month_index,
    utc_now,
)
from ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Calendar
    "ALL_MONTHS",
    "MONTHS",
    "month_index",
    "utc_now",
    # Entry models
    "DEFAULT_CATEGORIES",
    "EDITABLE_FIELDS",
    "Category",
    "ChangeEvent",
    "ChangeKind",
    "CompletionStats",
    "Entry",
    "EntryQuery",
    "EntrySubmission",
    "EntryTemplate",
    "EntryType",
    "EntryUpdate",
    "NewEntry",
    "PeriodReport",
    "Summary",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
