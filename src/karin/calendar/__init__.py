"""Business-day calendar and holiday data."""

from __future__ import annotations

from karin.calendar.business import (
    BusinessCalendar,
    add_days,
    coerce_date,
    count_days_between,
    is_business_day,
    local_today,
)
from karin.calendar.holidays import HolidaySource, StaticHolidaySource, YamlHolidaySource

__all__ = [
    "BusinessCalendar",
    "HolidaySource",
    "StaticHolidaySource",
    "YamlHolidaySource",
    "add_days",
    "coerce_date",
    "count_days_between",
    "is_business_day",
    "local_today",
]
