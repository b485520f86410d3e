"""Tests for period arithmetic."""

from datetime import date

import pytest

from ledger.periods import (
    Period,
    add_months,
    current_period,
    last_day_of_month,
    next_period,
    period_range,
    previous_period,
)

ALL_MONTHS = range(1, 13)


class TestNextAndPrevious:
    """Tests for single-step period moves."""

    def test_next_period_within_year(self):
        assert next_period(2026, 1) == (2026, 2)

    def test_next_period_wraps_december(self):
        """December rolls into January of the next year."""
        assert next_period(2025, 12) == (2026, 1)

    def test_previous_period_wraps_january(self):
        assert previous_period(2026, 1) == (2025, 12)

    @pytest.mark.parametrize("month", ALL_MONTHS)
    def test_next_undoes_previous(self, month):
        """next(previous(p)) == p for every month."""
        assert next_period(*previous_period(2026, month)) == (2026, month)

    @pytest.mark.parametrize("month", ALL_MONTHS)
    def test_month_always_normalized(self, month):
        for period in (next_period(2026, month), previous_period(2026, month)):
            assert 1 <= period.month <= 12


class TestAddMonths:
    """Tests for multi-month shifts used by installment schedules."""

    def test_add_zero_is_identity(self):
        assert add_months(2026, 7, 0) == (2026, 7)

    def test_installment_schedule_crosses_year(self):
        """Ten installments starting November 2026 end in August 2027."""
        schedule = [add_months(2026, 11, i) for i in range(10)]
        assert schedule[0] == (2026, 11)
        assert schedule[2] == (2027, 1)
        assert schedule[-1] == (2027, 8)

    @pytest.mark.parametrize("month", ALL_MONTHS)
    def test_add_twelve_is_next_year_same_month(self, month):
        assert add_months(2026, month, 12) == (2027, month)

    def test_add_many_years(self):
        assert add_months(2026, 3, 25) == (2028, 4)

    def test_result_is_period(self):
        result = add_months(2026, 12, 1)
        assert isinstance(result, Period)
        assert result.year == 2027
        assert result.month == 1
        assert str(result) == "2027-01"


class TestWindowHelpers:
    """Tests for the helpers that bound queries and date synthetic entries."""

    def test_period_range_is_inclusive_end(self):
        assert period_range(2026, 3, 6) == (2026, 9)

    def test_period_range_wraps_year(self):
        assert period_range(2026, 10, 6) == (2027, 4)

    def test_current_period(self):
        assert current_period(date(2026, 3, 15)) == Period(2026, 3)

    def test_last_day_of_month(self):
        assert last_day_of_month(2026, 1) == date(2026, 1, 31)
        assert last_day_of_month(2026, 4) == date(2026, 4, 30)

    def test_last_day_of_february_leap_year(self):
        assert last_day_of_month(2028, 2) == date(2028, 2, 29)
        assert last_day_of_month(2026, 2) == date(2026, 2, 28)
