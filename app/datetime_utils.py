"""
DateTime utility functions for the application.
"""
from datetime import datetime, timezone


def utcnow():
    """Naive UTC now, matching how timestamps are stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value):
    """
    Parse an ISO-8601 timestamp, accepting a trailing 'Z'.

    Args:
        value: ISO string such as "2025-10-20T03:56:29.000Z"

    Returns:
        datetime: timezone-aware datetime

    Raises:
        ValueError: If the value is not a valid ISO timestamp
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError("timestamp must be a non-empty string")

    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"

    # Python < 3.11 only accepts 0, 3 or 6 fractional digits
    if "." in text:
        head, _, tail = text.partition(".")
        digits = ""
        rest = ""
        for i, ch in enumerate(tail):
            if not ch.isdigit():
                rest = tail[i:]
                break
            digits += ch
        digits = (digits + "000000")[:6]
        text = f"{head}.{digits}{rest}"

    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_datetime_utc(dt):
    """
    Format a datetime object as ISO-8601 UTC with a trailing 'Z'.

    Args:
        dt: datetime object or None

    Returns:
        str: Formatted string, or None if dt is None
    """
    if not dt:
        return None

    # If dt is naive (no timezone), assume it's UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
