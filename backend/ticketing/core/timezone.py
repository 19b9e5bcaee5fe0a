"""
Business-timezone time authority.

All business dates (ticket validity, slot start times, "today") live in a
single fixed timezone, Asia/Jakarta (WIB, UTC+7) unless configured
otherwise. Persisted instants are UTC. Nothing else in the code base should
call datetime.now() or compare host-local timestamps; go through here.
"""

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo

from ticketing.core.config import get_settings

ALL_DAY = "all-day"


@lru_cache()
def business_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().BUSINESS_TIMEZONE)


def utcnow() -> datetime:
    """Current instant in UTC, for persisted timestamps."""
    return datetime.now(timezone.utc)


def now() -> datetime:
    """Current instant in the business timezone."""
    return datetime.now(business_tz())


def to_business(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        # Naive values coming back from the database are UTC
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(business_tz())


def start_of_day(instant: datetime) -> datetime:
    """Midnight of the instant's business-local day."""
    local = to_business(instant)
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


def to_date_key(instant: datetime) -> str:
    """YYYY-MM-DD of the instant in the business timezone."""
    return to_business(instant).strftime("%Y-%m-%d")


def today() -> date:
    return now().date()


def parse_date_key(date_key: str) -> date:
    return date.fromisoformat(date_key)


def parse_time_slot(value) -> Optional[time]:
    """
    Normalise a slot label to a time of day.
    Empty values and "all-day" mean the all-day bucket (None).
    Accepts "HH:MM" and "HH:MM:SS".
    """
    if value is None:
        return None
    if isinstance(value, time):
        return value.replace(microsecond=0)
    text = str(value).strip()
    if not text or text == ALL_DAY:
        return None
    parts = text.split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid time slot: {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    second = int(parts[2]) if len(parts) == 3 else 0
    return time(hour, minute, second)


def combine(date_key, time_value="00:00") -> datetime:
    """Aware instant for a business-local date and HH:MM[:SS] time."""
    day = date_key if isinstance(date_key, date) else parse_date_key(date_key)
    slot = parse_time_slot(time_value) or time(0, 0)
    return datetime.combine(day, slot, tzinfo=business_tz())


def add_minutes(instant: datetime, minutes: int) -> datetime:
    return instant + timedelta(minutes=minutes)


def add_days(instant: datetime, days: int) -> datetime:
    return instant + timedelta(days=days)


def days_ago_utc(days: int) -> datetime:
    return utcnow() - timedelta(days=days)


def is_past(instant: datetime) -> bool:
    return to_business(instant) < now()
