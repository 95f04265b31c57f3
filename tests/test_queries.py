"""Tests for period selection and configuration."""

import pytest
from datetime import date

from ledger.config import get_settings, validate_all_settings
from ledger.config.settings import LedgerSettings
from ledger.models.entry import ALL_MONTHS
from ledger.queries import PeriodSelection


class TestPeriodSelection:
    """Tests for PeriodSelection."""

    def test_defaults_to_all_months(self):
        """Test a selection without a month covers the whole year."""
        selection = PeriodSelection(year="2024")
        assert selection.is_all_months
        assert selection.label == f"{ALL_MONTHS}/2024"

    def test_current(self):
        """Test the current selection is today's month."""
        selection = PeriodSelection.current(date(2024, 3, 15))
        assert (selection.year, selection.month) == ("2024", "Março")

    def test_int_year(self):
        """Test an int year is normalised to a string."""
        assert PeriodSelection(year=2024).year == "2024"

    def test_rejects_bad_year(self):
        """Test the year must have four digits."""
        with pytest.raises(ValueError):
            PeriodSelection(year="99")

    def test_rejects_unknown_month(self):
        """Test months outside the canonical list are refused."""
        with pytest.raises(ValueError):
            PeriodSelection(year="2024", month="March")

    def test_all_months_query_has_no_month_predicate(self):
        """Test the sentinel never reaches the store as a month."""
        query = PeriodSelection(year="2024", month=ALL_MONTHS).to_query("user-1")
        assert query.month is None
        assert query.year == "2024"
        assert query.user_id == "user-1"

    def test_single_month_query(self):
        """Test a specific month is passed through."""
        query = PeriodSelection(year="2024", month="Março").to_query("user-1")
        assert query.month == "Março"

    def test_with_year_and_month(self):
        """Test selections are replaced, not mutated."""
        selection = PeriodSelection(year="2024", month="Março")
        changed = selection.with_year(2025).with_month(ALL_MONTHS)
        assert (selection.year, selection.month) == ("2024", "Março")
        assert (changed.year, changed.month) == ("2025", ALL_MONTHS)


class TestSettings:
    """Tests for pydantic-settings configuration."""

    def test_ledger_defaults(self, monkeypatch):
        """Test the built-in defaults."""
        for name in (
            "LEDGER_MAX_RECURRENCE_COUNT",
            "LEDGER_STORAGE_BACKEND",
            "LEDGER_REFRESH_DEBOUNCE_SECONDS",
        ):
            monkeypatch.delenv(name, raising=False)
        settings = LedgerSettings(_env_file=None)
        assert settings.max_recurrence_count == 60
        assert settings.storage_backend == "memory"
        assert settings.refresh_debounce_seconds == pytest.approx(0.05)

    def test_env_override(self, monkeypatch):
        """Test values are read from LEDGER_ variables."""
        monkeypatch.setenv("LEDGER_MAX_RECURRENCE_COUNT", "12")
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "google_sheets")
        settings = LedgerSettings(_env_file=None)
        assert settings.max_recurrence_count == 12
        assert settings.storage_backend == "google_sheets"

    def test_unknown_backend_rejected(self, monkeypatch):
        """Test only known backends are accepted."""
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "postgres")
        with pytest.raises(ValueError):
            LedgerSettings(_env_file=None)

    def test_validate_all_settings_memory_backend(self, monkeypatch):
        """Test Google Sheets is not required for the memory backend."""
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "memory")
        get_settings.cache_clear()
        try:
            results = validate_all_settings()
        finally:
            get_settings.cache_clear()
        assert results == {"ledger": True}

    def test_validate_all_settings_reports_missing_sheets(self, monkeypatch):
        """Test a google_sheets backend without credentials is reported."""
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "google_sheets")
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
        get_settings.cache_clear()
        try:
            results = validate_all_settings()
        finally:
            get_settings.cache_clear()
        assert results["ledger"] is True
        assert results["google_sheets"] is False
        assert "google_sheets_error" in results
