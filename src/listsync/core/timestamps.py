"""Timestamp helpers.

All timestamps handled by listsync are timezone-aware UTC datetimes.
Naive values coming back from SQLite or from clients are assumed to be UTC.
"""

from __future__ import annotations

from datetime import UTC, datetime

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def utcnow() -> datetime:
    """Current server time."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach or convert to UTC.

    Args:
        value: Naive (assumed UTC) or aware datetime.

    Returns:
        Aware datetime in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp.

    Accepts the "Z" suffix used by most clients.

    Args:
        value: ISO 8601 string.

    Returns:
        Aware datetime in UTC.

    Raises:
        ValueError: If the string is not a valid ISO 8601 timestamp.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid timestamp: {value!r}")
    return ensure_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))


def format_timestamp(value: datetime | None) -> str | None:
    """Format a datetime for API responses."""
    if value is None:
        return None
    return ensure_utc(value).isoformat()
