"""
Tests for interval counting and calendar helpers
"""

import pytest
from datetime import date, timedelta

from lendbook.dates import (
    add_months, add_months_rollover, add_years_rollover, format_date, parse_date,
)
from lendbook.errors import ValidationError
from lendbook.intervals import Cadence, IntervalUnit, cadence_intervals, intervals_elapsed


class TestDates:
    """Test date parsing and month arithmetic"""

    def test_parse_date_accepts_strings_and_dates(self):
        """Test parse date accepts strings and dates"""
        assert parse_date("2024-02-29") == date(2024, 2, 29)
        assert parse_date(date(2024, 1, 1)) == date(2024, 1, 1)
        assert parse_date("2024-03-05T23:30:00+05:00") == date(2024, 3, 5)

    def test_parse_date_rejects_garbage(self):
        """Test parse date rejects garbage"""
        with pytest.raises(ValidationError):
            parse_date("31/01/2024")
        with pytest.raises(ValidationError):
            parse_date("2024-02-15garbage")
        with pytest.raises(ValidationError):
            parse_date("2024-02-15 and more")
        with pytest.raises(ValidationError):
            parse_date(20240131)

    def test_format_date(self):
        """Test canonical date formatting"""
        assert format_date(date(2024, 3, 2)) == "2024-03-02"

    def test_add_months_clamps_to_month_end(self):
        """Test add months clamps to month end"""
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
        assert add_months(date(2024, 8, 31), 1) == date(2024, 9, 30)
        assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)

    def test_add_months_rollover_spills_into_next_month(self):
        """Test add months rollover spills into next month"""
        assert add_months_rollover(date(2024, 1, 31), 1) == date(2024, 3, 2)
        assert add_months_rollover(date(2023, 1, 31), 1) == date(2023, 3, 3)
        assert add_months_rollover(date(2024, 1, 15), 1) == date(2024, 2, 15)

    def test_add_years_rollover_leap_day(self):
        """Test add years rollover leap day"""
        assert add_years_rollover(date(2024, 2, 29), 1) == date(2025, 3, 1)
        assert add_years_rollover(date(2024, 2, 29), 4) == date(2028, 2, 29)


class TestCadence:
    """Test cadence validation"""

    def test_default_is_monthly(self):
        """Test default is monthly"""
        cadence = Cadence()
        assert cadence.unit == IntervalUnit.MONTHS
        assert cadence.value == 1
        assert cadence.describe() == "every month"

    def test_string_unit_is_coerced(self):
        """Test string unit is coerced"""
        cadence = Cadence("weeks", 2)
        assert cadence.unit == IntervalUnit.WEEKS
        assert cadence.describe() == "every 2 weeks"

    @pytest.mark.parametrize("value", [0, -1, 1.5, True])
    def test_invalid_multiplier(self, value):
        """Test invalid multiplier"""
        with pytest.raises(ValidationError):
            Cadence(IntervalUnit.DAYS, value)

    def test_unknown_unit(self):
        """Test unknown unit"""
        with pytest.raises(ValidationError):
            Cadence("fortnights", 1)

    def test_from_fields_defaults_when_unset(self):
        """Test from fields defaults when unset"""
        assert Cadence.from_fields(None, None) == Cadence()
        assert Cadence.from_fields("years", 2) == Cadence(IntervalUnit.YEARS, 2)


class TestIntervalsElapsed:
    """Test counting of complete cadences"""

    @pytest.mark.parametrize("unit", ["days", "weeks", "months", "years"])
    def test_same_date_is_zero(self, unit):
        """Test same date is zero"""
        assert intervals_elapsed("2024-05-17", "2024-05-17", unit, 1) == 0

    @pytest.mark.parametrize("unit", ["days", "weeks", "months", "years"])
    def test_end_before_start_is_zero(self, unit):
        """Test end before start is zero"""
        assert intervals_elapsed("2024-05-17", "2023-01-01", unit, 1) == 0

    def test_days(self):
        """Test day cadences"""
        assert intervals_elapsed("2024-01-01", "2024-01-31", "days", 1) == 30
        assert intervals_elapsed("2024-01-01", "2024-01-31", "days", 7) == 4

    def test_weeks(self):
        """Test week cadences"""
        assert intervals_elapsed("2024-01-01", "2024-01-14", "weeks", 1) == 1
        assert intervals_elapsed("2024-01-01", "2024-01-15", "weeks", 1) == 2
        assert intervals_elapsed("2024-01-01", "2024-01-29", "weeks", 2) == 2

    def test_months_complete_only(self):
        """Test months complete only"""
        assert intervals_elapsed("2024-01-15", "2024-02-14", "months", 1) == 0
        assert intervals_elapsed("2024-01-15", "2024-02-15", "months", 1) == 1
        assert intervals_elapsed("2024-01-01", "2024-03-01", "months", 1) == 2
        assert intervals_elapsed("2024-01-31", "2024-02-29", "months", 1) == 0

    def test_months_with_multiplier(self):
        """Test months with multiplier"""
        assert intervals_elapsed("2024-01-01", "2024-12-31", "months", 3) == 3
        assert intervals_elapsed("2024-01-01", "2025-01-01", "months", 3) == 4

    def test_years(self):
        """Test year cadences"""
        assert intervals_elapsed("2020-06-15", "2024-06-14", "years", 1) == 3
        assert intervals_elapsed("2020-06-15", "2024-06-15", "years", 1) == 4
        assert intervals_elapsed("2020-06-15", "2024-06-15", "years", 2) == 2

    def test_cadence_intervals(self):
        """Test counting with a Cadence object"""
        cadence = Cadence(IntervalUnit.MONTHS, 1)
        assert cadence_intervals(date(2024, 1, 1), date(2024, 4, 1), cadence) == 3

    @pytest.mark.parametrize("unit", ["days", "weeks", "months", "years"])
    def test_non_decreasing_as_end_advances(self, unit):
        """Test non decreasing as end advances"""
        start = date(2023, 1, 31)
        previous = 0
        for offset in range(0, 800, 3):
            count = intervals_elapsed(start, start + timedelta(days=offset), unit, 1)
            assert count >= previous
            previous = count
