from datetime import datetime, date, time, timedelta, timezone as dt_timezone
from typing import Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fitnudge.core.config import settings


def get_zoneinfo(tz_name: Optional[str] = None) -> ZoneInfo:
    """
    Resolve an IANA timezone name.
    Falls back to settings.DEFAULT_TIMEZONE when the name is blank or unknown,
    then to UTC if even the default cannot be loaded.
    """
    for candidate in (tz_name, getattr(settings, "DEFAULT_TIMEZONE", None), "UTC"):
        if not candidate or not str(candidate).strip():
            continue
        try:
            return ZoneInfo(str(candidate).strip())
        except (ZoneInfoNotFoundError, ValueError):
            continue
    return ZoneInfo("UTC")


def utc_now() -> datetime:
    return datetime.now(dt_timezone.utc)


def to_utc_aware(dt: datetime | None) -> datetime | None:
    """
    Normalize any datetime to UTC-aware (tzinfo=UTC).
    - Aware datetimes are converted to UTC
    - Naive datetimes are assumed UTC and tz attached (SQLite hands them back naive)
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=dt_timezone.utc)
    return dt.astimezone(dt_timezone.utc)


def to_local(now: datetime, tz_name: Optional[str]) -> datetime:
    """Wall-clock time in the user's zone for the given instant."""
    return to_utc_aware(now).astimezone(get_zoneinfo(tz_name))


def local_date(now: datetime, tz_name: Optional[str]) -> date:
    return to_local(now, tz_name).date()


def local_day_bounds(now: datetime, tz_name: Optional[str]) -> Tuple[datetime, datetime]:
    """
    Return the user's local calendar day containing `now` as a half-open
    [start, end) pair of UTC instants.

    Built from local midnights rather than `start + 24h` so DST days of
    23 or 25 hours are covered exactly.
    """
    zone = get_zoneinfo(tz_name)
    day = to_utc_aware(now).astimezone(zone).date()
    start = datetime.combine(day, time(0, 0), tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time(0, 0), tzinfo=zone)
    return start.astimezone(dt_timezone.utc), end.astimezone(dt_timezone.utc)


def parse_clock_time(value: Union[str, time, None]) -> Optional[time]:
    """
    Parse a stored meal/schedule time.
    Accepts "HH:MM", "HH:MM:SS" or a `datetime.time`; blank means not configured.
    Raises ValueError for anything else.
    """
    if value is None:
        return None
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    text = str(value).strip()
    if not text:
        return None
    parts = text.split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid clock time: {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    second = int(parts[2]) if len(parts) == 3 else 0
    return time(hour, minute, second)


def minutes_of_day(value: time | datetime) -> int:
    return value.hour * 60 + value.minute


def format_clock(dt: datetime) -> str:
    """24-hour HH:MM:SS, the form substituted for {currentTime}."""
    return dt.strftime("%H:%M:%S")
