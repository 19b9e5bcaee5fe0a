"""
Tests for the business-timezone helpers.
"""

from datetime import date, datetime, time, timezone

import pytest

from ticketing.core import timezone as tz


def test_date_key_uses_business_timezone():
    """18:00 UTC on Jan 1 is already Jan 2 in Jakarta (UTC+7)."""
    instant = datetime(2026, 1, 1, 18, 0, tzinfo=timezone.utc)
    assert tz.to_date_key(instant) == "2026-01-02"


def test_naive_instants_are_treated_as_utc():
    assert tz.to_date_key(datetime(2026, 1, 1, 16, 59)) == "2026-01-01"
    assert tz.to_date_key(datetime(2026, 1, 1, 17, 0)) == "2026-01-02"


def test_start_of_day_is_local_midnight():
    instant = datetime(2026, 3, 10, 20, 30, tzinfo=timezone.utc)
    start = tz.start_of_day(instant)
    assert (start.year, start.month, start.day) == (2026, 3, 11)
    assert (start.hour, start.minute) == (0, 0)
    assert start.utcoffset().total_seconds() == 7 * 3600


def test_combine_builds_aware_local_instant():
    instant = tz.combine("2026-05-01", "09:30")
    assert instant.astimezone(timezone.utc) == datetime(2026, 5, 1, 2, 30, tzinfo=timezone.utc)
    assert tz.combine(date(2026, 5, 1)).hour == 0


def test_add_minutes_and_days():
    start = tz.combine("2026-05-01", "09:00")
    assert tz.add_minutes(start, 150) == tz.combine("2026-05-01", "11:30")
    assert tz.add_days(start, 1) == tz.combine("2026-05-02", "09:00")


@pytest.mark.parametrize(
    "value,expected",
    [
        ("09:00", time(9, 0)),
        ("18:30:15", time(18, 30, 15)),
        (time(12, 0), time(12, 0)),
        ("all-day", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_time_slot(value, expected):
    assert tz.parse_time_slot(value) == expected


@pytest.mark.parametrize("value", ["noon", "9", "09:xx", "1:2:3:4"])
def test_parse_time_slot_rejects_garbage(value):
    with pytest.raises(ValueError):
        tz.parse_time_slot(value)
