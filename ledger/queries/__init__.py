"""Query package."""

from ledger.queries.period import PeriodSelection

__all__ = ["PeriodSelection"]
