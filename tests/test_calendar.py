"""Tests for business-day arithmetic."""

from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from karin.calendar.business import (
    BusinessCalendar,
    add_days,
    coerce_date,
    count_days_between,
    is_business_day,
    local_today,
)
from karin.core.errors import InvalidArgumentError, InvalidDateError
from karin.core.types import BusinessDayType, DayUnit

MONDAY = date(2025, 3, 3)
FRIDAY = date(2025, 3, 7)
SATURDAY = date(2025, 3, 8)


class TestAddDays:
    def test_monday_plus_three_is_thursday(self) -> None:
        assert add_days(MONDAY, 3) == date(2025, 3, 6)

    def test_skips_weekend(self) -> None:
        assert add_days(FRIDAY, 1) == date(2025, 3, 10)

    def test_skips_holidays(self) -> None:
        holidays = {date(2025, 3, 4)}
        assert add_days(MONDAY, 1, holidays=holidays) == date(2025, 3, 5)

    def test_zero_returns_start_even_on_weekend(self) -> None:
        assert add_days(SATURDAY, 0) == SATURDAY

    def test_calendar_days_add_directly(self) -> None:
        assert add_days(FRIDAY, 15, DayUnit.CALENDAR_DAYS) == FRIDAY + timedelta(days=15)

    def test_calendar_days_ignore_holidays(self) -> None:
        holidays = {date(2025, 3, 8)}
        assert add_days(FRIDAY, 1, DayUnit.CALENDAR_DAYS, holidays) == SATURDAY

    def test_negative_is_rejected(self) -> None:
        with pytest.raises(InvalidArgumentError):
            add_days(MONDAY, -1)

    @pytest.mark.parametrize("n", [1.5, "3", True, None])
    def test_non_integer_is_rejected(self, n) -> None:
        with pytest.raises(InvalidArgumentError):
            add_days(MONDAY, n)

    def test_working_day_type_counts_saturday(self) -> None:
        assert add_days(FRIDAY, 1, day_type=BusinessDayType.WORKING) == SATURDAY
        assert add_days(SATURDAY, 1, day_type=BusinessDayType.WORKING) == date(2025, 3, 10)

    def test_accepts_iso_string(self) -> None:
        assert add_days("2025-03-03", 3) == date(2025, 3, 6)

    def test_invalid_start_date(self) -> None:
        with pytest.raises(InvalidDateError):
            add_days("not-a-date", 1)


class TestCountDaysBetween:
    def test_counts_days_after_start_through_end(self) -> None:
        assert count_days_between(MONDAY, date(2025, 3, 6)) == 3

    def test_weekend_does_not_count(self) -> None:
        assert count_days_between(FRIDAY, date(2025, 3, 10)) == 1

    def test_same_day_is_zero(self) -> None:
        assert count_days_between(MONDAY, MONDAY) == 0

    def test_negative_when_reversed(self) -> None:
        assert count_days_between(date(2025, 3, 6), MONDAY) == -3

    def test_calendar_unit(self) -> None:
        assert count_days_between(MONDAY, date(2025, 3, 17), DayUnit.CALENDAR_DAYS) == 14

    def test_round_trip_with_holidays(self) -> None:
        holidays = {date(2025, 4, 18), date(2025, 5, 1), date(2025, 5, 21)}
        start = date(2025, 4, 1)
        for offset in range(0, 10):
            day = start + timedelta(days=offset)
            for n in (0, 1, 3, 5, 12, 30):
                due = add_days(day, n, holidays=holidays)
                assert count_days_between(day, due, holidays=holidays) == n

    def test_round_trip_working_days(self) -> None:
        due = add_days(MONDAY, 10, day_type=BusinessDayType.WORKING)
        assert count_days_between(MONDAY, due, day_type=BusinessDayType.WORKING) == 10


class TestCoerceDate:
    def test_date_passthrough(self) -> None:
        assert coerce_date(MONDAY) is MONDAY

    def test_datetime_is_truncated(self) -> None:
        assert coerce_date(datetime(2025, 3, 3, 23, 59)) == MONDAY

    def test_iso_datetime_string(self) -> None:
        assert coerce_date("2025-03-03T10:00:00") == MONDAY

    @pytest.mark.parametrize("value", [None, float("nan"), "", "03/03/2025", 20250303])
    def test_invalid_values(self, value) -> None:
        with pytest.raises(InvalidDateError):
            coerce_date(value)


class TestBusinessCalendar:
    def test_binds_holidays(self) -> None:
        cal = BusinessCalendar([date(2025, 3, 4)])
        assert not cal.is_business_day(date(2025, 3, 4))
        assert cal.add_days(MONDAY, 1) == date(2025, 3, 5)
        assert cal.count_days_between(MONDAY, date(2025, 3, 5)) == 1

    def test_with_holidays_keeps_day_type(self) -> None:
        cal = BusinessCalendar(day_type=BusinessDayType.WORKING)
        refreshed = cal.with_holidays([SATURDAY])
        assert refreshed.day_type == BusinessDayType.WORKING
        assert refreshed.holidays == frozenset({SATURDAY})
        assert cal.holidays == frozenset()

    def test_is_business_day_function(self) -> None:
        assert is_business_day(MONDAY)
        assert not is_business_day(SATURDAY)
        assert is_business_day(SATURDAY, day_type=BusinessDayType.WORKING)
        assert not is_business_day(date(2025, 3, 9), day_type=BusinessDayType.WORKING)


def test_local_today_returns_a_date() -> None:
    assert isinstance(local_today(), date)
    assert isinstance(local_today("UTC"), date)
