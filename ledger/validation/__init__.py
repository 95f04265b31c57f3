"""Validation package."""

from ledger.validation.errors import EntryValidationError, InvalidRecurrenceCount
from ledger.validation.validator import (
    EntryValidator,
    merge_categories,
    parse_amount,
)

__all__ = [
    "EntryValidationError",
    "EntryValidator",
    "InvalidRecurrenceCount",
    "merge_categories",
    "parse_amount",
]
