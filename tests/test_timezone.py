from datetime import date, time, timedelta

import pytest

from fitnudge.utils.timezone import local_date, local_day_bounds, parse_clock_time
from tests.conftest import utc


def test_local_day_bounds_ordinary_day():
    start, end = local_day_bounds(utc(2026, 3, 2, 8, 0), "Asia/Kolkata")
    assert start == utc(2026, 3, 1, 18, 30)
    assert end == utc(2026, 3, 2, 18, 30)


def test_local_day_bounds_dst_days():
    start, end = local_day_bounds(utc(2026, 3, 8, 15, 0), "America/New_York")
    assert end - start == timedelta(hours=23)
    start, end = local_day_bounds(utc(2026, 11, 1, 15, 0), "America/New_York")
    assert end - start == timedelta(hours=25)


def test_local_date_crosses_midnight():
    assert local_date(utc(2026, 3, 2, 18, 0), "Asia/Kolkata") == date(2026, 3, 2)
    assert local_date(utc(2026, 3, 2, 19, 0), "Asia/Kolkata") == date(2026, 3, 3)


@pytest.mark.parametrize("value,expected", [
    ("08:00", time(8, 0)),
    ("21:30:00", time(21, 30)),
    ("", None),
    (None, None),
    (time(7, 15), time(7, 15)),
])
def test_parse_clock_time(value, expected):
    assert parse_clock_time(value) == expected


def test_parse_clock_time_rejects_garbage():
    with pytest.raises(ValueError):
        parse_clock_time("lunchtime")
