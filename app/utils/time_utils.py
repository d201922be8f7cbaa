from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo
from app.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    SQLite hands back naive datetimes, so naive values are taken to be UTC.
    Aware values are converted to UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def settlement_timezone(name: Optional[str] = None) -> tzinfo:
    name = name or settings.settlement_timezone
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def start_of_day(day: date, tz_name: Optional[str] = None) -> datetime:
    """Midnight of ``day`` in the settlement timezone, expressed in UTC"""
    local_midnight = datetime.combine(day, time.min, tzinfo=settlement_timezone(tz_name))
    return local_midnight.astimezone(timezone.utc)


def start_of_today(now: datetime, tz_name: Optional[str] = None) -> datetime:
    local_now = as_utc(now).astimezone(settlement_timezone(tz_name))
    return start_of_day(local_now.date(), tz_name)


def end_of_day_exclusive(day: date, tz_name: Optional[str] = None) -> datetime:
    return start_of_day(day + timedelta(days=1), tz_name)


def start_of_week(now: datetime, tz_name: Optional[str] = None, weeks: int = 0) -> datetime:
    """
    Monday midnight of the week containing ``now`` in the settlement timezone,
    expressed in UTC. ``weeks`` shifts by whole calendar weeks (-1 is last week).
    """
    local_day = as_utc(now).astimezone(settlement_timezone(tz_name)).date()
    monday = local_day - timedelta(days=local_day.weekday()) + timedelta(weeks=weeks)
    return start_of_day(monday, tz_name)
