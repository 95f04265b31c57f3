"""
Aggregation Engine

Computes everything a period view shows from a flat list of entries that
is already filtered to one period selection:
- one total per entry type and the derived balance
- completion count / completed / percentage per entry type
- totals per category within each type

The engine is pure. It never touches the store and can be re-run on
every refresh.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

import structlog

from ledger.models.entry import (
    CompletionStats,
    Entry,
    EntryType,
    PeriodReport,
    Summary,
)


logger = structlog.get_logger(__name__)

_HUNDRED = Decimal(100)


def completion_percentage(completed: int, count: int) -> int:
    """round_half_up(100 * completed / count), or 0 when count is 0."""
    if count <= 0:
        return 0
    ratio = _HUNDRED * completed / count
    return int(ratio.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def aggregate(entries: Iterable[Entry]) -> PeriodReport:
    """
    Build the PeriodReport for one period's entries in a single pass.

    Entries whose type is not income, expense or investment are dropped.
    """
    totals = {t: Decimal(0) for t in EntryType}
    counts = {t: 0 for t in EntryType}
    completed = {t: 0 for t in EntryType}
    by_category: dict[EntryType, dict[str, Decimal]] = {t: {} for t in EntryType}
    seen = 0

    for entry in entries:
        entry_type = entry.entry_type
        if entry_type is None:
            logger.debug("unknown_entry_type_dropped", entry_id=str(entry.id), type=entry.type)
            continue

        seen += 1
        totals[entry_type] += entry.amount
        counts[entry_type] += 1
        if entry.is_completed:
            completed[entry_type] += 1

        bucket = by_category[entry_type]
        bucket[entry.category] = bucket.get(entry.category, Decimal(0)) + entry.amount

    income = totals[EntryType.INCOME]
    expense = totals[EntryType.EXPENSE]
    investment = totals[EntryType.INVESTMENT]

    return PeriodReport(
        summary=Summary(
            income=income,
            expense=expense,
            investment=investment,
            balance=income - expense - investment,
        ),
        completion={
            t: CompletionStats(
                count=counts[t],
                completed=completed[t],
                percentage=completion_percentage(completed[t], counts[t]),
            )
            for t in EntryType
        },
        category_totals=by_category,
        entry_count=seen,
    )
