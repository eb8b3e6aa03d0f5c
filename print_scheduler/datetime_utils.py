"""
DateTime utility functions for the application.

All conversions between UTC (storage) and shop-floor local time go through
this module. The shop runs on a single fixed UTC offset with no daylight
saving transitions.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

DEFAULT_UTC_OFFSET_HOURS = 2.0


def get_local_timezone(offset_hours: Optional[float] = None) -> timezone:
    """
    Get the fixed-offset shop timezone.

    Args:
        offset_hours: Hours east of UTC. Defaults to DEFAULT_UTC_OFFSET_HOURS.

    Returns:
        timezone: Fixed-offset timezone object
    """
    if offset_hours is None:
        offset_hours = DEFAULT_UTC_OFFSET_HOURS
    offset = timedelta(minutes=round(offset_hours * 60))
    sign = "+" if offset >= timedelta(0) else "-"
    total = abs(int(offset.total_seconds() // 60))
    return timezone(offset, f"UTC{sign}{total // 60:02d}:{total % 60:02d}")


def to_local(dt: datetime, tz: Optional[timezone] = None) -> datetime:
    """
    Convert a datetime to shop-local time.

    Naive datetimes are assumed to be UTC, matching how they are stored.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz or get_local_timezone())


def to_utc_naive(dt: datetime) -> datetime:
    """Convert an aware datetime to the naive UTC value stored in the database."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def from_utc_naive(dt: Optional[datetime], tz: Optional[timezone] = None) -> Optional[datetime]:
    """Convert a naive UTC database value back into shop-local time."""
    if dt is None:
        return None
    return to_local(dt, tz)


def utcnow() -> datetime:
    """Current time as naive UTC, the form used for audit columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_datetime_local(dt, tz: Optional[timezone] = None):
    """
    Format a datetime in shop-local time with readable format.
    Returns format like: "October 15, 2025 02:30:45 PM"

    Args:
        dt: datetime object, ISO string, or None

    Returns:
        str: Formatted datetime string in local time, or None if dt is None
    """
    if not dt:
        return None

    if isinstance(dt, str):
        try:
            dt = datetime.fromisoformat(dt.replace('Z', '+00:00'))
        except ValueError:
            return str(dt)

    return to_local(dt, tz).strftime("%B %d, %Y %I:%M:%S %p")


def isoformat_or_none(value):
    """ISO-format a date/datetime, passing None through."""
    if value is None:
        return None
    return value.isoformat()


def parse_datetime(value, tz: Optional[timezone] = None) -> Optional[datetime]:
    """
    Parse an ISO 8601 string; a value without offset is taken as shop-local time.

    Raises:
        ValueError: If value is not an ISO datetime.
    """
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz or get_local_timezone())
    return parsed
