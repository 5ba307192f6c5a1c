"""
GroupLedger - Normalizer Unit Tests

Amount, date and period parsing for CSV exports.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from app.utils.calculations import percentage, round_to, safe_divide, total
from app.utils.error_handling import InvalidPeriodException
from app.utils.normalizers import (
    derive_batch_period,
    parse_amount,
    parse_date,
    parse_period,
    period_for_date,
    period_months,
    quarter_for_date,
)


# =============================================================================
# AMOUNTS
# =============================================================================

class TestParseAmount:
    """Tests for exported amount strings."""

    def test_us_thousands_separator(self):
        assert parse_amount("24,200.00") == Decimal("24200.00")

    def test_european_format(self):
        assert parse_amount("24.200,00") == Decimal("24200.00")

    def test_currency_symbol_and_quotes(self):
        assert parse_amount('"€1,234.56"') == Decimal("1234.56")

    def test_currency_code_prefix(self):
        assert parse_amount("EUR 1,000.00") == Decimal("1000.00")

    def test_parenthesized_negative(self):
        assert parse_amount("(500.00)") == Decimal("-500.00")

    def test_minus_sign(self):
        assert parse_amount("-75.5") == Decimal("-75.5")

    def test_empty_and_missing_give_zero(self):
        assert parse_amount("") == Decimal("0")
        assert parse_amount(None) == Decimal("0")
        assert parse_amount("   ") == Decimal("0")

    def test_unreadable_gives_zero(self):
        assert parse_amount("n/a") == Decimal("0")

    def test_ambiguous_comma_is_thousands(self):
        """1,234 is read with a thousands separator, not as 1.234."""
        assert parse_amount("1,234") == Decimal("1234")

    def test_numeric_input(self):
        assert parse_amount(12) == Decimal("12")
        assert parse_amount(Decimal("3.50")) == Decimal("3.50")


# =============================================================================
# DATES
# =============================================================================

class TestParseDate:
    """Tests for exported date strings."""

    def test_iso_date(self):
        assert parse_date("2024-01-15") == date(2024, 1, 15)

    def test_iso_datetime_suffix_ignored(self):
        assert parse_date("2024-01-15T10:30:00") == date(2024, 1, 15)

    def test_us_four_digit_year(self):
        assert parse_date("3/7/2024") == date(2024, 3, 7)

    def test_us_two_digit_year_pivot(self):
        assert parse_date("1/5/24") == date(2024, 1, 5)
        assert parse_date("1/5/99") == date(1999, 1, 5)

    def test_invalid_calendar_date(self):
        assert parse_date("2024-02-30") is None

    def test_unreadable_gives_none(self):
        assert parse_date("not a date") is None
        assert parse_date("") is None
        assert parse_date(None) is None

    def test_date_objects_pass_through(self):
        assert parse_date(date(2024, 6, 1)) == date(2024, 6, 1)
        assert parse_date(datetime(2024, 6, 1, 12, 0)) == date(2024, 6, 1)


# =============================================================================
# PERIODS
# =============================================================================

class TestPeriods:
    """Tests for period tokens."""

    def test_period_for_date(self):
        assert period_for_date(date(2024, 3, 9)) == "2024-03"
        assert quarter_for_date(date(2024, 11, 30)) == "2024-Q4"

    def test_parse_month_period(self):
        assert parse_period("2024-02") == (date(2024, 2, 1), date(2024, 2, 29))

    def test_parse_quarter_period(self):
        assert parse_period("2024-Q2") == (date(2024, 4, 1), date(2024, 6, 30))

    @pytest.mark.parametrize("period", ["2024-13", "2024-Q5", "24-01", "", "January"])
    def test_invalid_period(self, period):
        with pytest.raises(InvalidPeriodException):
            parse_period(period)

    def test_period_months_for_quarter(self):
        assert period_months("2024-Q1") == ["2024-01", "2024-02", "2024-03"]
        assert period_months("2024-05") == ["2024-05"]


class TestDeriveBatchPeriod:
    """Tests for the reporting period of an upload."""

    def test_single_month(self):
        dates = [date(2024, 1, 3), date(2024, 1, 28)]
        assert derive_batch_period(dates) == "2024-01"

    def test_single_quarter(self):
        dates = [date(2024, 1, 3), date(2024, 3, 28)]
        assert derive_batch_period(dates) == "2024-Q1"

    def test_wider_spread_uses_earliest_month(self):
        dates = [date(2024, 5, 1), date(2024, 1, 3), None]
        assert derive_batch_period(dates) == "2024-01"

    def test_no_dates_uses_today(self):
        assert derive_batch_period([None], today=date(2025, 7, 4)) == "2025-07"


class TestCalculations:
    """Tests for guarded decimal arithmetic."""

    def test_safe_divide_by_zero(self):
        assert safe_divide(Decimal("10"), 0) == Decimal("0")

    def test_percentage_rounds_half_up(self):
        assert percentage(1, 8) == Decimal("12.50")
        assert percentage(Decimal("6000"), Decimal("10000")) == Decimal("60.00")

    def test_round_to_zero_places(self):
        assert round_to(Decimal("40.5"), 0) == Decimal("41")

    def test_total_of_nothing(self):
        assert total([]) == Decimal("0")
