"""
Date helpers for membership periods.

Membership renewals move the end date forward by whole calendar months,
keeping the time of day and clamping the day to the length of the target
month (Jan 31 + 1 month -> Feb 28, or Feb 29 in leap years).
"""

import calendar
from datetime import datetime, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

from dateutil import parser as dtp

from config import settings


def now_utc() -> datetime:
    """Current time as a timezone-aware UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and normalize aware ones"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_utc_months(base: datetime, months: int) -> datetime:
    """Add calendar months to a UTC datetime, clamping the day of month"""
    base = ensure_utc(base)
    month_index = base.month - 1 + months
    year = base.year + month_index // 12
    month = month_index % 12 + 1
    day = min(base.day, calendar.monthrange(year, month)[1])
    return base.replace(year=year, month=month, day=day)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Render a datetime as ISO-8601 UTC with millisecond precision (``...Z``)"""
    if value is None:
        return None
    value = ensure_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-ish timestamp; returns None when it cannot be parsed"""
    if not value:
        return None
    try:
        return ensure_utc(dtp.isoparse(value))
    except (ValueError, OverflowError):
        return None


def format_display_time(value: Union[str, datetime, None]) -> str:
    """Format a timestamp in the display timezone as ``YYYY/MM/DD HH:MM:SS``"""
    if not value:
        return "-"
    if isinstance(value, datetime):
        parsed = ensure_utc(value)
    else:
        parsed = parse_datetime(value)
        if parsed is None:
            return value
    local = parsed.astimezone(ZoneInfo(settings.DISPLAY_TIMEZONE))
    return local.strftime("%Y/%m/%d %H:%M:%S")
