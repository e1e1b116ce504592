"""Timestamp utilities."""

from datetime import datetime, timezone


def generate_timestamp() -> datetime:
    """
    Generate a timezone-aware UTC timestamp.

    Returns:
        datetime: Current UTC time with timezone info
    """
    return datetime.now(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """
    Format a datetime as ISO 8601 string.

    Args:
        dt: Datetime to format

    Returns:
        str: ISO 8601 formatted string (e.g., "2024-01-15T10:30:00+00:00")
    """
    return dt.isoformat()


def parse_timestamp(iso_string: str) -> datetime:
    """
    Parse an ISO 8601 timestamp string.

    Args:
        iso_string: ISO 8601 formatted string

    Returns:
        datetime: Parsed datetime with timezone info
    """
    return datetime.fromisoformat(iso_string)


def epoch_millis(dt: datetime | None = None) -> int:
    """Milliseconds since the Unix epoch, used to name credential backups."""
    dt = dt or generate_timestamp()
    return int(dt.timestamp() * 1000)
