"""
Datetime utilities.

Date fields are stamped with the signer's local calendar date, while
completion events and log records use timezone-aware UTC. Keep all date
formatting in here so the two never get mixed up.
"""
from datetime import date, datetime, timezone
from typing import Optional, Union

# US-style date used for date fields (MM/DD/YYYY)
FIELD_DATE_FORMAT = "%m/%d/%Y"


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    Use this instead of datetime.utcnow() which returns naive datetime.
    """
    return datetime.now(timezone.utc)


def local_today() -> date:
    """Today's date on the signer's machine."""
    return date.today()


def format_field_date(value: Optional[Union[date, datetime]] = None) -> str:
    """
    Format a date the way date fields display it.

    Args:
        value: Date to format. Defaults to local today.

    Returns:
        Zero-padded MM/DD/YYYY string, e.g. "03/07/2025"
    """
    if value is None:
        value = local_today()
    return value.strftime(FIELD_DATE_FORMAT)


def iso_timestamp(value: Optional[datetime] = None) -> str:
    """
    ISO-8601 UTC timestamp with a Z suffix, as sent in completion events.

    Naive datetimes are assumed to be UTC.
    """
    dt = value or utc_now()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
