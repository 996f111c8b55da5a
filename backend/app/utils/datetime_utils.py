"""
Date and time utilities for GoldLedger.

Provides timezone-aware datetime helpers.
"""
from datetime import datetime, timezone, date


def utcnow() -> datetime:
    """
    Get current UTC datetime with timezone info.

    Returns:
        datetime: Current datetime in UTC with tzinfo set to timezone.utc

    Note:
        Always use this function instead of datetime.now() to ensure
        timezone-aware timestamps across the application.
    """
    return datetime.now(timezone.utc)


def as_utc_datetime(v) -> datetime:
    """
    Coerce an effective date into an aware UTC datetime.

    Accepts a datetime (naive values are taken as UTC), a date (midnight UTC)
    or an ISO 8601 string of either form.
    """
    if isinstance(v, str):
        try:
            v = datetime.fromisoformat(v)
        except ValueError as e:
            raise ValueError(f"Input must be an ISO date or datetime string. Error: {e}")
    if isinstance(v, datetime):
        return v.replace(tzinfo=timezone.utc) if v.tzinfo is None else v.astimezone(timezone.utc)
    if isinstance(v, date):
        return datetime(v.year, v.month, v.day, tzinfo=timezone.utc)
    raise TypeError(f"Input must be a str, date or datetime, got {type(v)}")
