"""
Two-Stage Entry Validation

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (user, category)
- Format checks (4-digit year, canonical month, known entry type)
- Amount parsing (decimal comma accepted) and sign
- Recurrence count range

STAGE 2 - SEMANTIC VALIDATION:
- Category known for the entry type (defaults or user-defined)

Stage 2 only runs when stage 1 passes. Semantic findings are warnings:
free-form categories are allowed, the user is only told about them.

IMPORTANT: Validation NEVER silently fixes issues, and it runs before any
store call. Errors are raised as EntryValidationError.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from ledger.config import get_settings
from ledger.models.entry import (
    ALL_MONTHS,
    DEFAULT_CATEGORIES,
    EDITABLE_FIELDS,
    MONTHS,
    Category,
    EntrySubmission,
    EntryTemplate,
    EntryType,
    EntryUpdate,
    ValidationIssue,
    ValidationResult,
)
from ledger.validation.errors import EntryValidationError, InvalidRecurrenceCount


def parse_amount(value: Any) -> Decimal:
    """
    Parse a user-entered amount.

    Accepts Decimal, int, float or a string such as "12.50" or "12,50".

    Raises:
        ValueError: If the value is not a finite number
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Amount is not numeric: {value!r}")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip().replace(",", ".")
        if not text:
            raise ValueError("Amount is empty")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"Amount is not numeric: {value!r}") from None
    else:
        raise ValueError(f"Amount is not numeric: {value!r}")

    if not amount.is_finite():
        raise ValueError(f"Amount is not numeric: {value!r}")
    return amount


def merge_categories(user_categories: Iterable[Category]) -> dict[EntryType, list[str]]:
    """Built-in defaults first, then user categories, without duplicates."""
    merged = {t: list(DEFAULT_CATEGORIES[t]) for t in EntryType}
    for category in user_categories:
        names = merged[category.type]
        if category.name not in names:
            names.append(category.name)
    return merged


class EntryValidator:
    """
    Validates entry submissions and edits.

    Stage 1: Schema validation (no store access)
    Stage 2: Semantic validation against the user's known categories
    """

    def __init__(self, max_recurrence_count: Optional[int] = None):
        if max_recurrence_count is None:
            max_recurrence_count = get_settings().ledger.max_recurrence_count
        self._max_recurrence = max_recurrence_count

    @property
    def max_recurrence_count(self) -> int:
        return self._max_recurrence

    def _validate_schema(
        self,
        submission: EntrySubmission,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if not submission.user_id:
            issues.append(ValidationIssue(
                field="user_id",
                issue_type="missing",
                message="Entry has no owning user",
                severity="error",
            ))

        if len(submission.year) != 4 or not submission.year.isdigit():
            issues.append(ValidationIssue(
                field="year",
                issue_type="invalid_format",
                message=f"Year must have 4 digits, got {submission.year!r}",
                severity="error",
            ))

        if submission.month == ALL_MONTHS:
            issues.append(ValidationIssue(
                field="month",
                issue_type="invalid_value",
                message="An entry must belong to a single month",
                severity="error",
                suggested_fix="Pick a month instead of all months",
            ))
        elif submission.month not in MONTHS:
            issues.append(ValidationIssue(
                field="month",
                issue_type="invalid_value",
                message=f"Unknown month: {submission.month!r}",
                severity="error",
            ))

        if submission.type not in {t.value for t in EntryType}:
            issues.append(ValidationIssue(
                field="type",
                issue_type="invalid_value",
                message=f"Unknown entry type: {submission.type!r}",
                severity="error",
                suggested_fix="Use receita, despesa or investimento",
            ))

        if not submission.category:
            issues.append(ValidationIssue(
                field="category",
                issue_type="missing",
                message="Category is required",
                severity="error",
            ))

        issues.extend(self._amount_issues(submission.amount))

        count = submission.recurrence_count
        if (
            isinstance(count, bool)
            or not isinstance(count, int)
            or not 1 <= count <= self._max_recurrence
        ):
            issues.append(ValidationIssue(
                field="recurrence_count",
                issue_type="out_of_range",
                message=(
                    f"Recurrence count must be between 1 and "
                    f"{self._max_recurrence}, got {count!r}"
                ),
                severity="error",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    @staticmethod
    def _amount_issues(value: Any) -> list[ValidationIssue]:
        try:
            amount = parse_amount(value)
        except ValueError as e:
            return [ValidationIssue(
                field="amount",
                issue_type="not_numeric",
                message=str(e),
                severity="error",
                suggested_fix="Enter a number such as 1500,00",
            )]
        if amount < 0:
            return [ValidationIssue(
                field="amount",
                issue_type="negative",
                message="Amount cannot be negative",
                severity="error",
                suggested_fix="Choose the entry type instead of a negative sign",
            )]
        return []

    def _validate_semantic(
        self,
        submission: EntrySubmission,
        known_categories: dict[EntryType, list[str]],
    ) -> list[ValidationIssue]:
        """Stage 2: Semantic validation. Warnings only."""
        issues = []
        names = known_categories.get(EntryType(submission.type), [])
        if submission.category not in names:
            issues.append(ValidationIssue(
                field="category",
                issue_type="unknown_category",
                message=f"Category {submission.category!r} is not in your list",
                severity="warning",
                suggested_fix="Add it to your categories to reuse it",
            ))
        return issues

    def validate_submission(
        self,
        submission: EntrySubmission,
        user_categories: Optional[Iterable[Category]] = None,
    ) -> ValidationResult:
        """
        Validate a submission.

        Stage 2 runs only when user_categories is given, so schema
        validation alone never needs the store.

        Returns:
            ValidationResult with all issues found
        """
        schema_valid, issues = self._validate_schema(submission)
        if schema_valid and user_categories is not None:
            issues.extend(
                self._validate_semantic(submission, merge_categories(user_categories))
            )
        return ValidationResult(is_valid=schema_valid, issues=issues)

    def prepare_series(
        self,
        submission: EntrySubmission,
    ) -> tuple[EntryTemplate, str, str, int, ValidationResult]:
        """
        Validate a submission and split it into what the expander needs.

        Returns:
            (template, year, month, count, validation_result)

        Raises:
            InvalidRecurrenceCount: If the recurrence count is out of range
            EntryValidationError: For any other error-level issue
        """
        result = self.validate_submission(submission)
        if result.has_errors:
            raise self._error_for(result, submission.recurrence_count)

        template = EntryTemplate(
            user_id=submission.user_id,
            type=EntryType(submission.type),
            category=submission.category,
            amount=parse_amount(submission.amount),
            description=submission.description or None,
        )
        return (
            template,
            submission.year,
            submission.month,
            submission.recurrence_count,
            result,
        )

    def validate_update(self, changes: dict) -> EntryUpdate:
        """
        Validate an edit of an existing entry.

        Only description, category and amount may change.

        Raises:
            EntryValidationError: If other fields are present or values are bad
        """
        issues = []

        for field in sorted(set(changes) - EDITABLE_FIELDS):
            issues.append(ValidationIssue(
                field=field,
                issue_type="immutable",
                message=f"Field {field!r} cannot be changed after creation",
                severity="error",
            ))

        if not changes:
            issues.append(ValidationIssue(
                field="__all__",
                issue_type="empty",
                message="No changes given",
                severity="error",
            ))

        cleaned = dict(changes)
        if "amount" in cleaned:
            amount_issues = self._amount_issues(cleaned["amount"])
            issues.extend(amount_issues)
            if not amount_issues:
                cleaned["amount"] = parse_amount(cleaned["amount"])

        if "category" in cleaned:
            category = cleaned["category"]
            if category is not None and not isinstance(category, str):
                issues.append(ValidationIssue(
                    field="category",
                    issue_type="invalid_value",
                    message=f"Category must be text, got {category!r}",
                    severity="error",
                ))
            elif not (category or "").strip():
                issues.append(ValidationIssue(
                    field="category",
                    issue_type="missing",
                    message="Category cannot be empty",
                    severity="error",
                ))

        if issues:
            result = ValidationResult(is_valid=False, issues=issues)
            raise EntryValidationError(self.get_user_friendly_summary(result), result)

        try:
            return EntryUpdate(**cleaned)
        except ValidationError as e:
            raise EntryValidationError(f"Invalid entry update: {e}") from e

    def _error_for(self, result: ValidationResult, count: Any) -> EntryValidationError:
        if any(
            issue.field == "recurrence_count" and issue.severity == "error"
            for issue in result.issues
        ):
            return InvalidRecurrenceCount(count, self._max_recurrence, result)
        return EntryValidationError(self.get_user_friendly_summary(result), result)

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """One line per issue, errors first."""
        if not result.issues:
            return "All checks passed."

        lines = []
        for severity, label in (("error", "Error"), ("warning", "Check")):
            for issue in result.issues:
                if issue.severity != severity:
                    continue
                line = f"{label}: {issue.message}"
                if issue.suggested_fix:
                    line += f" ({issue.suggested_fix})"
                lines.append(line)
        return "\n".join(lines)
