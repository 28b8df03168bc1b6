"""Business-day arithmetic over an injected holiday set."""

from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import date, datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo

from karin.core.errors import InvalidArgumentError, InvalidDateError
from karin.core.types import BusinessDayType, DayUnit

# Monday=0 ... Sunday=6
_LAST_BUSINESS_WEEKDAY: dict[BusinessDayType, int] = {
    BusinessDayType.ADMINISTRATIVE: 4,
    BusinessDayType.WORKING: 5,
}


def coerce_date(value: Any) -> date:
    """Normalise a date-like value, raising InvalidDateError when impossible."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip()).date()
        except ValueError as exc:
            raise InvalidDateError(f"Unparseable date {value!r}") from exc
    if isinstance(value, float) and math.isnan(value):
        raise InvalidDateError("Date is NaN")
    raise InvalidDateError(f"Not a date: {value!r}")


def is_business_day(
    day: date,
    holidays: Iterable[date] = (),
    day_type: BusinessDayType = BusinessDayType.ADMINISTRATIVE,
) -> bool:
    if day.weekday() > _LAST_BUSINESS_WEEKDAY[day_type]:
        return False
    return day not in holidays


def add_days(
    start: date,
    n: int,
    unit: DayUnit = DayUnit.BUSINESS_DAYS,
    holidays: Iterable[date] = (),
    day_type: BusinessDayType = BusinessDayType.ADMINISTRATIVE,
) -> date:
    """Advance ``start`` by ``n`` days of the given unit.

    Business days are counted one calendar day at a time, skipping
    weekends and holidays. ``n == 0`` returns ``start`` unchanged even
    when it is not itself a business day.
    """
    start = coerce_date(start)
    if isinstance(n, bool) or not isinstance(n, int):
        raise InvalidArgumentError(f"Day count must be an integer, got {n!r}")
    if n < 0:
        raise InvalidArgumentError(f"Day count must be >= 0, got {n}")

    if unit == DayUnit.CALENDAR_DAYS:
        return start + timedelta(days=n)

    holiday_set = frozenset(holidays)
    current = start
    added = 0
    while added < n:
        current += timedelta(days=1)
        if is_business_day(current, holiday_set, day_type):
            added += 1
    return current


def count_days_between(
    start: date,
    end: date,
    unit: DayUnit = DayUnit.BUSINESS_DAYS,
    holidays: Iterable[date] = (),
    day_type: BusinessDayType = BusinessDayType.ADMINISTRATIVE,
) -> int:
    """Signed count of qualifying days after ``start`` up to and including ``end``.

    Negative when ``end`` is before ``start``. Consistent with add_days:
    ``count_days_between(s, add_days(s, n)) == n``.
    """
    start = coerce_date(start)
    end = coerce_date(end)

    if unit == DayUnit.CALENDAR_DAYS:
        return (end - start).days

    if end < start:
        return -count_days_between(end, start, unit, holidays, day_type)

    holiday_set = frozenset(holidays)
    count = 0
    current = start
    while current < end:
        current += timedelta(days=1)
        if is_business_day(current, holiday_set, day_type):
            count += 1
    return count


class BusinessCalendar:
    """Holiday set and day type bound together for repeated calculations."""

    def __init__(
        self,
        holidays: Iterable[date] = (),
        day_type: BusinessDayType = BusinessDayType.ADMINISTRATIVE,
    ) -> None:
        self._holidays = frozenset(coerce_date(h) for h in holidays)
        self._day_type = day_type

    @property
    def holidays(self) -> frozenset[date]:
        return self._holidays

    @property
    def day_type(self) -> BusinessDayType:
        return self._day_type

    def with_holidays(self, holidays: Iterable[date]) -> BusinessCalendar:
        """Return a calendar with the same day type and a refreshed holiday set."""
        return BusinessCalendar(holidays, self._day_type)

    def is_business_day(self, day: date) -> bool:
        return is_business_day(coerce_date(day), self._holidays, self._day_type)

    def add_days(self, start: date, n: int, unit: DayUnit = DayUnit.BUSINESS_DAYS) -> date:
        return add_days(start, n, unit, self._holidays, self._day_type)

    def count_days_between(
        self, start: date, end: date, unit: DayUnit = DayUnit.BUSINESS_DAYS
    ) -> int:
        return count_days_between(start, end, unit, self._holidays, self._day_type)


def local_today(tz_name: str | None = None) -> date:
    """Today's date in ``tz_name`` (UTC when not given)."""
    if not tz_name:
        return datetime.now(timezone.utc).date()
    return datetime.now(ZoneInfo(tz_name)).date()
