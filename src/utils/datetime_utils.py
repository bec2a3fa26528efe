from __future__ import annotations

import time as _time
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

CUBA_TZ_NAME = "America/Havana"


def _load_cuba_tz() -> tzinfo:
    try:
        return ZoneInfo(CUBA_TZ_NAME)
    except ZoneInfoNotFoundError:
        # Sin tzdata: Cuba opera en UTC-5 la mayor parte del año
        return timezone(timedelta(hours=-5), "CST")


CUBA_TZ = _load_cuba_tz()

DateInput = Union[str, _time.struct_time, datetime, None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are assumed to be UTC (SQLite returns them that way)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_to_utc(value: DateInput) -> Optional[datetime]:
    """
    Parse feed, NewsAPI and API date forms into an aware UTC datetime.

    Returns None for empty or unparseable input instead of guessing "now".
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, _time.struct_time):
        return datetime(*value[:6], tzinfo=timezone.utc)
    try:
        parsed = date_parser.parse(str(value))
    except (ValueError, OverflowError, TypeError):
        return None
    return ensure_utc(parsed)


def to_cuba_time(dt: datetime) -> datetime:
    return ensure_utc(dt).astimezone(CUBA_TZ)


def cuba_now(now: Optional[datetime] = None) -> datetime:
    return to_cuba_time(now or utc_now())


def cuba_hour(dt: Optional[datetime] = None) -> int:
    return cuba_now(dt).hour


def start_of_cuba_day(dt: Optional[datetime] = None) -> datetime:
    """Midnight of the Cuban calendar day containing ``dt``, returned in UTC."""
    local = cuba_now(dt)
    midnight = datetime(local.year, local.month, local.day, tzinfo=CUBA_TZ)
    return midnight.astimezone(timezone.utc)


def cuba_datetime(day: datetime, hour: int, minute: int = 0) -> datetime:
    """UTC instant for ``hour:minute`` Cuba time on the Cuban day of ``day``."""
    local = cuba_now(day)
    target = datetime(local.year, local.month, local.day, hour, minute, tzinfo=CUBA_TZ)
    return target.astimezone(timezone.utc)


def hours_between(later: datetime, earlier: datetime) -> float:
    return (ensure_utc(later) - ensure_utc(earlier)).total_seconds() / 3600.0


def format_display(dt_utc: datetime, fmt: str = "%Y-%m-%d %H:%M %Z") -> str:
    """Format a UTC datetime in Cuba time for logs and CLI output."""
    return to_cuba_time(dt_utc).strftime(fmt)
