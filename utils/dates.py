"""
UTC time helpers.

Everything stored or exchanged uses one reference: UTC. Timestamps are
ISO-8601 strings with millisecond precision and a trailing 'Z'
(2024-05-01T09:30:00.000Z), calendar dates are plain YYYY-MM-DD.
"""

from datetime import date, datetime, timezone

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_today() -> date:
    return utc_now().date()


def to_iso(dt: datetime) -> str:
    """Format a datetime as a UTC timestamp string. Naive values are taken as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def parse_timestamp(value: str | None, default: datetime = EPOCH) -> datetime:
    """Parse a stored timestamp. Missing or garbage values give `default`."""
    if not value or not isinstance(value, str):
        return default
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return default
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_date(value: str | None) -> date | None:
    """Calendar date from 'YYYY-MM-DD' (a full timestamp is cut to its date part)."""
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None
