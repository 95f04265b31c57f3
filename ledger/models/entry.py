"""
Core Data Models for the Personal Ledger

These models define the schemas for everything that flows between the
store, the engine and the views:
1. Entries as persisted by the store (Entry)
2. Entries about to be inserted (NewEntry, EntryTemplate)
3. Loose user submissions awaiting validation (EntrySubmission)
4. Derived, never-stored aggregates (Summary, CompletionStats, PeriodReport)

DESIGN DECISION: An Entry read back from the store keeps `type` as a plain
string. The type set is closed on creation, but the store boundary does not
enforce it, so the aggregation engine decides what to do with unknown values.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# CALENDAR
# =============================================================================

MONTHS: tuple[str, ...] = (
    "Janeiro", "Fevereiro", "Março", "Abril", "Maio", "Junho",
    "Julho", "Agosto", "Setembro", "Outubro", "Novembro", "Dezembro",
)

# Query-time sentinel for "no month filter". Never stored on an entry.
ALL_MONTHS = "Todos os Meses"


def month_index(month: str) -> int:
    """Zero-based index of a canonical month name."""
    try:
        return MONTHS.index(month)
    except ValueError:
        raise ValueError(f"Unknown month: {month!r}") from None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class EntryType(str, Enum):
    """
    Kinds of ledger entries.

    Investments count as an outflow when computing the balance.
    """
    INCOME = "receita"
    EXPENSE = "despesa"
    INVESTMENT = "investimento"


class ChangeKind(str, Enum):
    """Mutation kinds reported by a store change feed."""
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    UNKNOWN = "unknown"


# Built-in categories, merged with user categories at read time.
DEFAULT_CATEGORIES: dict[EntryType, tuple[str, ...]] = {
    EntryType.INCOME: ("Salário", "Freelance", "Investimentos", "Outros"),
    EntryType.EXPENSE: (
        "Moradia", "Alimentação", "Transporte", "Saúde", "Lazer", "Outros",
    ),
    EntryType.INVESTMENT: (
        "Ações", "Fundos", "Renda Fixa", "Criptomoedas", "Outros",
    ),
}


def _check_year(v: str) -> str:
    if len(v) != 4 or not v.isdigit():
        raise ValueError(f"Year must be a 4-digit string, got {v!r}")
    return v


def _check_month(v: str) -> str:
    if v == ALL_MONTHS:
        raise ValueError(f"{ALL_MONTHS!r} is a query filter, not a month")
    if v not in MONTHS:
        raise ValueError(f"Unknown month: {v!r}")
    return v


# =============================================================================
# ENTRY MODELS
# =============================================================================

class EntryTemplate(BaseModel):
    """
    The part of an entry that repeats across a recurring series.

    Dates (year/month) are supplied separately to the expander.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    user_id: str = Field(..., min_length=1)
    type: EntryType
    category: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., ge=0)
    description: Optional[str] = Field(default=None, max_length=500)


class NewEntry(BaseModel):
    """An entry ready to be inserted. The store assigns id and timestamps."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    user_id: str = Field(..., min_length=1)
    year: str
    month: str
    type: EntryType
    category: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., ge=0)
    description: Optional[str] = Field(default=None, max_length=500)
    is_completed: bool = False

    @field_validator("year")
    @classmethod
    def validate_year(cls, v: str) -> str:
        return _check_year(v)

    @field_validator("month")
    @classmethod
    def validate_month(cls, v: str) -> str:
        return _check_month(v)


class Entry(BaseModel):
    """
    A persisted ledger entry.

    INVARIANT: completed_at is set if and only if is_completed is true.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID
    user_id: str = Field(..., min_length=1)
    year: str
    month: str
    type: str
    category: str = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0)
    description: Optional[str] = None
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("year")
    @classmethod
    def validate_year(cls, v: str) -> str:
        return _check_year(v)

    @field_validator("month")
    @classmethod
    def validate_month(cls, v: str) -> str:
        return _check_month(v)

    @model_validator(mode="after")
    def validate_completion(self) -> "Entry":
        if self.is_completed and self.completed_at is None:
            raise ValueError("Completed entry must have completed_at")
        if not self.is_completed and self.completed_at is not None:
            raise ValueError("Incomplete entry cannot have completed_at")
        return self

    @property
    def entry_type(self) -> Optional[EntryType]:
        """The entry's type, or None when the stored value is not recognised."""
        try:
            return EntryType(self.type)
        except ValueError:
            return None


# Fields that may change after creation (completion aside).
EDITABLE_FIELDS = frozenset({"description", "category", "amount"})


class EntryUpdate(BaseModel):
    """Validated edit of an existing entry. Unset fields are left alone."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    description: Optional[str] = Field(default=None, max_length=500)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    amount: Optional[Decimal] = Field(default=None, ge=0)

    def to_fields(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class EntrySubmission(BaseModel):
    """
    A user-submitted entry request, before validation.

    CRITICAL: This is UNTRUSTED input. Fields are deliberately loose;
    EntryValidator turns it into an EntryTemplate plus a start period,
    or reports why it cannot.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = ""
    year: str = ""
    month: str = ""
    type: str = ""
    category: str = ""
    amount: Any = None
    description: Optional[str] = None
    recurrence_count: Any = 1

    @field_validator("year", mode="before")
    @classmethod
    def stringify_year(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class Category(BaseModel):
    """A user-defined category. Defaults are never stored."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    user_id: str = Field(..., min_length=1)
    type: EntryType
    name: str = Field(..., min_length=1, max_length=100)


class EntryQuery(BaseModel):
    """A resolved store query. month=None means no month predicate."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    year: str
    month: Optional[str] = None


class ChangeEvent(BaseModel):
    """
    Notification from a store change feed.

    Only user_id is guaranteed to be meaningful.
    """
    user_id: str
    kind: ChangeKind = ChangeKind.UNKNOWN
    entry_id: Optional[UUID] = None
    received_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# DERIVED AGGREGATES
# =============================================================================

class CompletionStats(BaseModel):
    """Completion ratio for one entry type."""
    model_config = ConfigDict(frozen=True)

    count: int = Field(default=0, ge=0)
    completed: int = Field(default=0, ge=0)
    percentage: int = Field(default=0, ge=0, le=100)


class Summary(BaseModel):
    """Per-period totals. Derived on every refresh, never stored."""
    model_config = ConfigDict(frozen=True)

    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")
    investment: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")

    def total_for(self, entry_type: EntryType) -> Decimal:
        return {
            EntryType.INCOME: self.income,
            EntryType.EXPENSE: self.expense,
            EntryType.INVESTMENT: self.investment,
        }[entry_type]


class PeriodReport(BaseModel):
    """Everything a view shows for one period selection."""
    model_config = ConfigDict(frozen=True)

    summary: Summary = Field(default_factory=Summary)
    completion: dict[EntryType, CompletionStats] = Field(
        default_factory=lambda: {t: CompletionStats() for t in EntryType}
    )
    category_totals: dict[EntryType, dict[str, Decimal]] = Field(
        default_factory=lambda: {t: {} for t in EntryType}
    )
    entry_count: int = 0


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'not_numeric', 'out_of_range')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """Outcome of validating a submission or an edit."""

    validated_at: datetime = Field(default_factory=utc_now)
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]
