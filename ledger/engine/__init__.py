"""Pure ledger computations: recurrence expansion and period aggregation."""

from ledger.engine.aggregation import aggregate, completion_percentage
from ledger.engine.recurrence import (
    DEFAULT_MAX_RECURRENCE,
    check_recurrence_count,
    expand_recurrence,
    month_offset,
)

__all__ = [
    "DEFAULT_MAX_RECURRENCE",
    "aggregate",
    "check_recurrence_count",
    "completion_percentage",
    "expand_recurrence",
    "month_offset",
]
