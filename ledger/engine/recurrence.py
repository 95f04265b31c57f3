"""
Recurrence Expander

Turns one entry template plus a recurrence count into a chronological
series of entries, one per consecutive calendar month, rolling the year
over after Dezembro.

POLICY: every generated occurrence starts not completed, the first one
included.
"""

from typing import Optional, Union

from ledger.models.entry import (
    MONTHS,
    EntryTemplate,
    NewEntry,
    month_index,
)
from ledger.validation.errors import InvalidRecurrenceCount


DEFAULT_MAX_RECURRENCE = 60


def check_recurrence_count(count: object, maximum: int = DEFAULT_MAX_RECURRENCE) -> int:
    """Return count if it is an int in [1, maximum], else raise InvalidRecurrenceCount."""
    # bool is an int subclass; True is not a count
    if isinstance(count, bool) or not isinstance(count, int):
        raise InvalidRecurrenceCount(count, maximum)
    if not 1 <= count <= maximum:
        raise InvalidRecurrenceCount(count, maximum)
    return count


def month_offset(year: Union[str, int], month: str, offset: int) -> tuple[str, str]:
    """The (year, month) pair `offset` months after (year, month)."""
    absolute = month_index(month) + offset
    return str(int(year) + absolute // 12), MONTHS[absolute % 12]


def expand_recurrence(
    template: EntryTemplate,
    year: Union[str, int],
    month: str,
    count: int,
    maximum: Optional[int] = None,
) -> list[NewEntry]:
    """
    Expand a template into `count` monthly entries starting at (year, month).

    Args:
        template: Fields shared by every occurrence
        year: Starting year (4 digits)
        month: Starting canonical month name
        count: Number of occurrences, 1 for a single entry
        maximum: Upper bound for count (defaults to 60)

    Returns:
        Entries in chronological order

    Raises:
        InvalidRecurrenceCount: If count is not an int in [1, maximum]
    """
    check_recurrence_count(
        count,
        DEFAULT_MAX_RECURRENCE if maximum is None else maximum,
    )

    entries = []
    for offset in range(count):
        entry_year, entry_month = month_offset(year, month, offset)
        entries.append(
            NewEntry(
                user_id=template.user_id,
                year=entry_year,
                month=entry_month,
                type=template.type,
                category=template.category,
                amount=template.amount,
                description=template.description,
                is_completed=False,
            )
        )
    return entries
