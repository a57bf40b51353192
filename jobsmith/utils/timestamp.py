"""Timestamp utilities."""

from datetime import datetime, timedelta, timezone


def now_utc() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def now_exact() -> str:
    """Current UTC time as an ISO 8601 string (e.g., "2025-11-20T18:45:40.572549+00:00")."""
    return now_utc().isoformat()


def parse_timestamp(iso_timestamp: str) -> datetime:
    """
    Parse an ISO 8601 timestamp, treating naive values as UTC.

    Args:
        iso_timestamp: ISO 8601 formatted timestamp string

    Returns:
        Timezone-aware datetime

    Raises:
        ValueError: If the string is not a valid ISO 8601 timestamp
    """
    dt = datetime.fromisoformat(iso_timestamp)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def is_fresh(cached_at: str | datetime, ttl: timedelta, now: datetime | None = None) -> bool:
    """
    Check whether a cached timestamp is still within its time-to-live.

    An entry is fresh while ``now - cached_at < ttl``. Unparseable timestamps
    are treated as stale.

    Args:
        cached_at: When the entry was written (ISO string or datetime)
        ttl: Freshness window
        now: Reference time (defaults to current UTC time)

    Returns:
        True if the entry is still fresh
    """
    if now is None:
        now = now_utc()

    if isinstance(cached_at, str):
        try:
            cached_at = parse_timestamp(cached_at)
        except ValueError:
            return False
    elif cached_at.tzinfo is None:
        cached_at = cached_at.replace(tzinfo=timezone.utc)

    return now - cached_at < ttl


def format_age(cached_at: str, now: datetime | None = None) -> str:
    """
    Format the age of a timestamp in compact form (e.g., "2h", "5d").

    Returns the original string if it cannot be parsed.
    """
    if now is None:
        now = now_utc()
    try:
        diff = now - parse_timestamp(cached_at)
    except ValueError:
        return cached_at

    seconds = int(diff.total_seconds())
    minutes = seconds // 60
    hours = minutes // 60

    if seconds < 60:
        return f"{seconds}s"
    elif minutes < 60:
        return f"{minutes}m"
    elif hours < 24:
        return f"{hours}h"
    else:
        return f"{diff.days}d"
