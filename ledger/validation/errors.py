"""Validation exceptions. Raised before any store call is made."""

from typing import Optional

from ledger.models.entry import ValidationIssue, ValidationResult


class EntryValidationError(Exception):
    """A submission or edit was rejected. Never retried automatically."""

    def __init__(self, message: str, result: Optional[ValidationResult] = None):
        super().__init__(message)
        self.result = result or ValidationResult(
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="__all__",
                    issue_type="invalid",
                    message=message,
                    severity="error",
                )
            ],
        )

    @property
    def issues(self) -> list[ValidationIssue]:
        return self.result.issues


class InvalidRecurrenceCount(EntryValidationError):
    """Recurrence count outside the accepted range."""

    def __init__(self, count: object, maximum: int, result: Optional[ValidationResult] = None):
        self.count = count
        self.maximum = maximum
        super().__init__(
            f"Recurrence count must be an integer between 1 and {maximum}, got {count!r}",
            result,
        )
