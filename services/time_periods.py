from __future__ import annotations

import calendar
from datetime import datetime
from enum import Enum


class TimePeriod(str, Enum):
    ONE_MONTH = "ONE_MONTH"
    THREE_MONTHS = "THREE_MONTHS"
    SIX_MONTHS = "SIX_MONTHS"
    ONE_YEAR = "ONE_YEAR"
    ALL_TIME = "ALL_TIME"


_MONTHS_BACK = {
    TimePeriod.ONE_MONTH: 1,
    TimePeriod.THREE_MONTHS: 3,
    TimePeriod.SIX_MONTHS: 6,
    TimePeriod.ONE_YEAR: 12,
}

ALL_TIME_START = datetime(1970, 1, 1)


def _subtract_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 - months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def parse_time_period(value) -> TimePeriod:
    if isinstance(value, TimePeriod):
        return value
    try:
        return TimePeriod(str(value).strip().upper())
    except ValueError as exc:
        choices = ", ".join(p.value for p in TimePeriod)
        raise ValueError(f"Unknown time period {value!r}; expected one of {choices}.") from exc


def min_date_from_time_period(period, now: datetime | None = None) -> datetime:
    """Earliest tournament date included in `period` (calendar months back from `now`)."""
    period = parse_time_period(period or TimePeriod.ALL_TIME)
    if period is TimePeriod.ALL_TIME:
        return ALL_TIME_START
    now = now or datetime.utcnow()
    return _subtract_months(now, _MONTHS_BACK[period])


__all__ = ["ALL_TIME_START", "TimePeriod", "min_date_from_time_period", "parse_time_period"]
