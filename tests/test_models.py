"""
Tests for the Personal Ledger

Test strategy:
1. Unit tests for individual components (models, engine, validators)
2. Integration tests for flows (with in-memory or faked stores)
3. No real API calls in tests (use mocks)
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from ledger.models.entry import (
    ALL_MONTHS,
    MONTHS,
    Category,
    Entry,
    EntrySubmission,
    EntryType,
    EntryUpdate,
    NewEntry,
    PeriodReport,
    Summary,
    ValidationIssue,
    ValidationResult,
    month_index,
)
from ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


def _entry(**overrides) -> Entry:
    fields = dict(
        id=uuid4(),
        user_id="user-1",
        year="2024",
        month="Março",
        type="despesa",
        category="Moradia",
        amount=Decimal("100.00"),
    )
    fields.update(overrides)
    return Entry(**fields)


class TestCalendar:
    """Tests for month names and the all-months sentinel."""

    def test_twelve_months(self):
        """Test there are twelve canonical month names."""
        assert len(MONTHS) == 12
        assert MONTHS[0] == "Janeiro"
        assert MONTHS[-1] == "Dezembro"

    def test_month_index(self):
        """Test month_index is zero-based."""
        assert month_index("Janeiro") == 0
        assert month_index("Dezembro") == 11

    def test_month_index_rejects_sentinel(self):
        """Test the all-months sentinel is not a month."""
        with pytest.raises(ValueError):
            month_index(ALL_MONTHS)


class TestEntryModels:
    """Tests for entry Pydantic models."""

    def test_entry_creation(self):
        """Test Entry model creation."""
        entry = _entry(description="  Aluguel  ")
        assert entry.description == "Aluguel"
        assert entry.entry_type == EntryType.EXPENSE
        assert entry.is_completed is False
        assert entry.completed_at is None

    def test_entry_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValueError):
            _entry(amount=Decimal("-1"))

    def test_entry_rejects_all_months(self):
        """Test the all-months sentinel is never stored on an entry."""
        with pytest.raises(ValueError):
            _entry(month=ALL_MONTHS)

    def test_entry_rejects_short_year(self):
        """Test that the year must have four digits."""
        with pytest.raises(ValueError):
            _entry(year="24")

    def test_completed_entry_needs_completed_at(self):
        """Test is_completed without completed_at is rejected."""
        with pytest.raises(ValueError):
            _entry(is_completed=True)

    def test_incomplete_entry_cannot_have_completed_at(self):
        """Test completed_at without is_completed is rejected."""
        with pytest.raises(ValueError):
            _entry(completed_at=datetime.now(timezone.utc))

    def test_completed_entry(self):
        """Test a consistent completed entry."""
        stamp = datetime(2024, 3, 5, tzinfo=timezone.utc)
        entry = _entry(is_completed=True, completed_at=stamp)
        assert entry.completed_at == stamp

    def test_unknown_type_is_kept_but_unrecognised(self):
        """Test a stored type outside the known set reads back as None."""
        entry = _entry(type="transferencia")
        assert entry.type == "transferencia"
        assert entry.entry_type is None

    def test_new_entry_rejects_unknown_type(self):
        """Test new entries must use a known type."""
        with pytest.raises(ValueError):
            NewEntry(
                user_id="user-1",
                year="2024",
                month="Março",
                type="transferencia",
                category="Outros",
                amount=Decimal("1"),
            )

    def test_submission_accepts_int_year(self):
        """Test the submission turns an int year into a string."""
        submission = EntrySubmission(year=2024, month="Março")
        assert submission.year == "2024"

    def test_entry_update_tracks_set_fields(self):
        """Test only the fields given are part of the update."""
        update = EntryUpdate(amount=Decimal("10"))
        assert update.to_fields() == {"amount": Decimal("10")}

    def test_entry_update_forbids_other_fields(self):
        """Test non-editable fields are refused."""
        with pytest.raises(ValueError):
            EntryUpdate(year="2025")

    def test_category_strips_whitespace(self):
        """Test that whitespace is stripped from category names."""
        category = Category(user_id="user-1", type=EntryType.EXPENSE, name="  Pets  ")
        assert category.name == "Pets"


class TestReportModels:
    """Tests for derived aggregate models."""

    def test_empty_report(self):
        """Test an empty report has zero totals for every type."""
        report = PeriodReport()
        assert report.summary.balance == Decimal("0")
        assert set(report.completion) == set(EntryType)
        assert all(stats.percentage == 0 for stats in report.completion.values())

    def test_summary_total_for(self):
        """Test total_for maps entry types to totals."""
        summary = Summary(
            income=Decimal("10"),
            expense=Decimal("3"),
            investment=Decimal("2"),
            balance=Decimal("5"),
        )
        assert summary.total_for(EntryType.INCOME) == Decimal("10")
        assert summary.total_for(EntryType.INVESTMENT) == Decimal("2")


class TestValidationModels:
    """Tests for validation result models."""

    def test_validation_issue_creation(self):
        """Test ValidationIssue creation."""
        issue = ValidationIssue(
            field="amount",
            issue_type="not_numeric",
            message="Amount is not numeric",
            severity="error",
            suggested_fix="Enter a number",
        )
        assert issue.severity == "error"

    def test_validation_issue_rejects_bad_severity(self):
        """Test that severity is restricted."""
        with pytest.raises(ValueError):
            ValidationIssue(
                field="amount",
                issue_type="x",
                message="x",
                severity="fatal",
            )

    def test_validation_result_counts(self):
        """Test error and warning helpers."""
        result = ValidationResult(
            is_valid=False,
            issues=[
                ValidationIssue(field="a", issue_type="x", message="x", severity="error"),
                ValidationIssue(field="b", issue_type="y", message="y", severity="warning"),
            ],
        )
        assert result.has_errors
        assert result.error_count == 1
        assert [issue.field for issue in result.warnings] == ["b"]


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.ENTRY_DELETED,
            severity=AuditSeverity.INFO,
            description="Entry deleted",
        )
        assert event.event_id is not None
        assert event.timestamp is not None

    def test_audit_event_to_sheets_row(self):
        """Test conversion to spreadsheet row."""
        entry_id = uuid4()
        event = AuditEventBuilder.entry_deleted(entry_id, "user-1")
        row = event.to_sheets_row()
        assert len(row) == 12
        assert row[2] == AuditEventType.ENTRY_DELETED.value
        assert row[5] == str(entry_id)
        assert row[6] == "user-1"

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEventBuilder.category_added("user-1", "despesa", "Pets")
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == AuditEventType.CATEGORY_ADDED.value

    def test_builder_entry_created(self):
        """Test builder for entry created event."""
        entry_id = uuid4()
        correlation_id = uuid4()
        event = AuditEventBuilder.entry_created(
            entry_id=entry_id,
            user_id="user-1",
            entry_type="despesa",
            amount="100.00",
            period="Março/2024",
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.ENTRY_CREATED
        assert event.entity_id == entry_id
        assert event.correlation_id == correlation_id

    def test_builder_save_failed(self):
        """Test builder for save failures."""
        event = AuditEventBuilder.save_failed(
            operation="create",
            user_id="user-1",
            error_message="Connection timeout",
        )
        assert event.event_type == AuditEventType.SAVE_FAILED
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "Connection timeout"
