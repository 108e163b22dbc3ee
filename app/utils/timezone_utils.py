"""
Timezone Utilities for the scheduling backend

Timezone-aware datetime handling with ZoneInfo. Schedules are stored as
local wall-clock times in the practice timezone; appointments are stored in UTC.
"""

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo
from typing import Optional, Union
import logging

from app.config import PRACTICE_TIMEZONE

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = PRACTICE_TIMEZONE


def now_in_timezone(timezone_str: str = DEFAULT_TIMEZONE) -> datetime:
    """
    Get current time in specified timezone.

    Args:
        timezone_str: Timezone string (e.g., 'America/Denver')

    Returns:
        Timezone-aware datetime
    """
    return datetime.now(ZoneInfo(timezone_str))


def today_in_timezone(timezone_str: str = DEFAULT_TIMEZONE) -> date:
    """Current calendar date in the practice timezone."""
    return now_in_timezone(timezone_str).date()


def local_to_utc(day: date, wall_time: time, timezone_str: str = DEFAULT_TIMEZONE) -> datetime:
    """Combine a local date and wall-clock time and convert to UTC."""
    local_dt = datetime.combine(day, wall_time).replace(tzinfo=ZoneInfo(timezone_str))
    return local_dt.astimezone(timezone.utc)


def utc_to_local(utc_dt: datetime, timezone_str: str = DEFAULT_TIMEZONE) -> datetime:
    """
    Convert UTC datetime to practice time.

    Args:
        utc_dt: UTC datetime (can be naive or aware)
        timezone_str: Target timezone string
    """
    if utc_dt.tzinfo is None:
        utc_dt = utc_dt.replace(tzinfo=timezone.utc)
    return utc_dt.astimezone(ZoneInfo(timezone_str))


def parse_date(value: Union[str, date, None]) -> Optional[date]:
    """Parse 'YYYY-MM-DD' (or a longer ISO timestamp) into a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def parse_datetime(value: Union[str, datetime]) -> datetime:
    """Parse an ISO timestamp; naive values are treated as UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_wall_time(value: Union[str, time]) -> time:
    """Parse 'HH:MM' or 'HH:MM:SS' schedule times."""
    if isinstance(value, time):
        return value
    parts = str(value).split(":")
    hour, minute = int(parts[0]), int(parts[1])
    second = int(parts[2]) if len(parts) > 2 else 0
    return time(hour, minute, second)


def schedule_day_of_week(day: date) -> int:
    """Day index used by provider_availability rows (0 = Sunday)."""
    return (day.weekday() + 1) % 7


def utc_now_iso() -> str:
    """Current UTC timestamp for created_at/updated_at columns."""
    return datetime.now(timezone.utc).isoformat()
