from datetime import datetime

import pytest

from services.time_periods import ALL_TIME_START, TimePeriod, min_date_from_time_period, parse_time_period


@pytest.mark.parametrize(
    "period, expected",
    [
        (TimePeriod.ONE_MONTH, datetime(2026, 2, 28, 12)),
        (TimePeriod.THREE_MONTHS, datetime(2025, 12, 31, 12)),
        (TimePeriod.SIX_MONTHS, datetime(2025, 9, 30, 12)),
        (TimePeriod.ONE_YEAR, datetime(2025, 3, 31, 12)),
        (TimePeriod.ALL_TIME, ALL_TIME_START),
    ],
)
def test_min_date_from_time_period(period, expected):
    assert min_date_from_time_period(period, now=datetime(2026, 3, 31, 12)) == expected


def test_missing_period_means_all_time():
    assert min_date_from_time_period(None) == ALL_TIME_START


def test_parse_is_case_insensitive():
    assert parse_time_period(" six_months ") is TimePeriod.SIX_MONTHS


def test_unknown_time_period_is_rejected():
    with pytest.raises(ValueError):
        min_date_from_time_period("FOREVER")
