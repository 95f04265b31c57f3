"""
Period Filter

Maps the viewer's (year, month-or-all) selection to a store query.

The "all months" choice is a UI sentinel. It is never compared against
stored month names: the month predicate is left out of the query.
"""

from datetime import date
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator

from ledger.models.entry import ALL_MONTHS, MONTHS, EntryQuery


class PeriodSelection(BaseModel):
    """The period a view is showing. Query parameter only, never persisted."""
    model_config = ConfigDict(frozen=True)

    year: str
    month: str = ALL_MONTHS

    @field_validator("year", mode="before")
    @classmethod
    def validate_year(cls, v: Union[str, int]) -> str:
        text = str(v).strip()
        if len(text) != 4 or not text.isdigit():
            raise ValueError(f"Year must have 4 digits, got {v!r}")
        return text

    @field_validator("month")
    @classmethod
    def validate_month(cls, v: str) -> str:
        if v != ALL_MONTHS and v not in MONTHS:
            raise ValueError(f"Unknown month: {v!r}")
        return v

    @classmethod
    def current(cls, today: Optional[date] = None) -> "PeriodSelection":
        """Selection for the current month."""
        today = today or date.today()
        return cls(year=str(today.year), month=MONTHS[today.month - 1])

    @property
    def is_all_months(self) -> bool:
        return self.month == ALL_MONTHS

    @property
    def label(self) -> str:
        return f"{self.month}/{self.year}"

    def with_year(self, year: Union[str, int]) -> "PeriodSelection":
        return PeriodSelection(year=year, month=self.month)

    def with_month(self, month: str) -> "PeriodSelection":
        return PeriodSelection(year=self.year, month=month)

    def to_query(self, user_id: str) -> EntryQuery:
        """Resolve to a store query for one user."""
        return EntryQuery(
            user_id=user_id,
            year=self.year,
            month=None if self.is_all_months else self.month,
        )
