"""Datetime helpers.

Timestamps are timezone-aware UTC everywhere; the columns are
``DateTime(timezone=True)``.
"""

from datetime import UTC, datetime

UTC_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utcnow() -> datetime:
    """Aware UTC now."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to a naive datetime (as read back from SQLite), convert aware ones."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def format_utc_datetime(dt: datetime | None) -> str | None:
    """Format datetime to a second-precision ISO string with Z suffix.

    Aware datetimes are converted to UTC first; naive ones are assumed UTC.
    The fixed width keeps string comparison in the same order as time, which
    the expiry sweep relies on when it filters JSON metadata.

    Args:
        dt: datetime object or None

    Returns:
        ISO format string with Z suffix (e.g., "2026-01-10T10:30:00Z") or None
    """
    if dt is None:
        return None
    return ensure_utc(dt).strftime(UTC_FORMAT)


def parse_utc_datetime(value: str | datetime) -> datetime:
    """Parse an ISO-8601 string (``Z`` or offset suffix) into aware UTC."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
