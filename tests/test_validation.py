"""Tests for the two-stage entry validator."""

import pytest
from decimal import Decimal

from ledger.models.entry import ALL_MONTHS, Category, EntryType
from ledger.validation import (
    EntryValidationError,
    EntryValidator,
    InvalidRecurrenceCount,
    merge_categories,
    parse_amount,
)

from conftest import make_submission


@pytest.fixture
def validator():
    return EntryValidator(max_recurrence_count=60)


class TestParseAmount:
    """Tests for parse_amount."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("12.50", Decimal("12.50")),
            ("12,50", Decimal("12.50")),
            ("  7 ", Decimal("7")),
            (3, Decimal("3")),
            (0.1, Decimal("0.1")),
            (Decimal("9.99"), Decimal("9.99")),
        ],
    )
    def test_accepted(self, value, expected):
        """Test numbers and decimal-comma strings are parsed."""
        assert parse_amount(value) == expected

    @pytest.mark.parametrize("value", ["", "abc", "1.2.3", None, True, "NaN", "inf", []])
    def test_rejected(self, value):
        """Test anything that is not a finite number is refused."""
        with pytest.raises(ValueError):
            parse_amount(value)


class TestMergeCategories:
    """Tests for merge_categories."""

    def test_defaults_first_then_user(self):
        """Test user categories follow the built-in ones."""
        merged = merge_categories([
            Category(user_id="user-1", type=EntryType.EXPENSE, name="Pets"),
        ])
        assert merged[EntryType.EXPENSE][0] == "Moradia"
        assert merged[EntryType.EXPENSE][-1] == "Pets"

    def test_no_duplicates(self):
        """Test a user category equal to a default is listed once."""
        merged = merge_categories([
            Category(user_id="user-1", type=EntryType.EXPENSE, name="Moradia"),
        ])
        assert merged[EntryType.EXPENSE].count("Moradia") == 1


class TestSchemaStage:
    """Tests for stage 1 validation."""

    def test_valid_submission(self, validator):
        """Test a complete submission passes."""
        result = validator.validate_submission(make_submission())
        assert result.is_valid
        assert not result.has_errors

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"user_id": ""}, "user_id"),
            ({"year": "24"}, "year"),
            ({"month": "January"}, "month"),
            ({"month": ALL_MONTHS}, "month"),
            ({"type": "transferencia"}, "type"),
            ({"category": ""}, "category"),
            ({"amount": "abc"}, "amount"),
            ({"amount": "-5"}, "amount"),
            ({"recurrence_count": 0}, "recurrence_count"),
            ({"recurrence_count": 61}, "recurrence_count"),
        ],
    )
    def test_invalid_field(self, validator, overrides, field):
        """Test each malformed field is reported as an error on that field."""
        result = validator.validate_submission(make_submission(**overrides))
        assert not result.is_valid
        assert field in {issue.field for issue in result.issues if issue.severity == "error"}

    def test_unknown_category_is_a_warning(self, validator):
        """Test stage 2 only warns about unknown categories."""
        result = validator.validate_submission(
            make_submission(category="Pets"),
            user_categories=[],
        )
        assert result.is_valid
        assert [issue.issue_type for issue in result.warnings] == ["unknown_category"]

    def test_user_category_is_known(self, validator):
        """Test a user-defined category produces no warning."""
        result = validator.validate_submission(
            make_submission(category="Pets"),
            user_categories=[Category(user_id="user-1", type=EntryType.EXPENSE, name="Pets")],
        )
        assert result.warnings == []


class TestPrepareSeries:
    """Tests for prepare_series."""

    def test_returns_template_and_start(self, validator):
        """Test the submission is split for the expander."""
        template, year, month, count, _ = validator.prepare_series(
            make_submission(amount="1500,00", recurrence_count=3)
        )
        assert template.amount == Decimal("1500.00")
        assert template.type == EntryType.EXPENSE
        assert (year, month, count) == ("2024", "Janeiro", 3)

    def test_empty_description_becomes_none(self, validator):
        """Test a blank description is not stored as an empty string."""
        template, *_ = validator.prepare_series(make_submission(description=""))
        assert template.description is None

    def test_bad_count_raises_invalid_recurrence(self, validator):
        """Test an out-of-range count raises InvalidRecurrenceCount."""
        with pytest.raises(InvalidRecurrenceCount):
            validator.prepare_series(make_submission(recurrence_count=61))

    def test_bool_count_is_refused(self, validator):
        """Test True is not accepted as a count."""
        with pytest.raises(InvalidRecurrenceCount):
            validator.prepare_series(make_submission(recurrence_count=True))

    def test_other_errors_raise_validation_error(self, validator):
        """Test a bad amount raises EntryValidationError with its issues."""
        with pytest.raises(EntryValidationError) as exc_info:
            validator.prepare_series(make_submission(amount="abc"))
        assert not isinstance(exc_info.value, InvalidRecurrenceCount)
        assert exc_info.value.issues[0].field == "amount"


class TestUpdateValidation:
    """Tests for validate_update."""

    def test_editable_fields(self, validator):
        """Test description, category and amount may change."""
        update = validator.validate_update({"amount": "99,90", "description": "Novo"})
        assert update.to_fields() == {"amount": Decimal("99.90"), "description": "Novo"}

    @pytest.mark.parametrize("field", ["year", "month", "type", "is_completed", "user_id"])
    def test_immutable_fields(self, validator, field):
        """Test other fields are refused."""
        with pytest.raises(EntryValidationError):
            validator.validate_update({field: "x"})

    def test_empty_changes(self, validator):
        """Test an edit must change something."""
        with pytest.raises(EntryValidationError):
            validator.validate_update({})

    def test_bad_amount(self, validator):
        """Test a non-numeric amount is refused."""
        with pytest.raises(EntryValidationError):
            validator.validate_update({"amount": "abc"})

    def test_blank_category(self, validator):
        """Test a category cannot be cleared."""
        with pytest.raises(EntryValidationError):
            validator.validate_update({"category": "  "})

    def test_non_text_category(self, validator):
        """Test a category that is not text is reported, not crashed on."""
        with pytest.raises(EntryValidationError) as exc_info:
            validator.validate_update({"category": 5})
        [issue] = exc_info.value.issues
        assert (issue.field, issue.issue_type) == ("category", "invalid_value")


class TestSummary:
    """Tests for get_user_friendly_summary."""

    def test_errors_listed_before_warnings(self, validator):
        """Test errors come first."""
        result = validator.validate_submission(make_submission(amount="abc"))
        summary = validator.get_user_friendly_summary(result)
        assert summary.startswith("Error:")
