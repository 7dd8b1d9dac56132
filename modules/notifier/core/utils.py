"""
Core Utilities.

Shared utility functions used across the service.
All modules should import utilities from this module.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Return current UTC time as timezone-naive datetime.

    All datetime values in the application are timezone-naive and assumed
    to be UTC. This keeps database storage and comparisons consistent.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are returned unchanged."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def isoformat_utc(value: datetime | None = None) -> str:
    """Render a UTC datetime (default: now) as ISO 8601 with a trailing Z."""
    moment = to_naive_utc(value) if value is not None else utc_now()
    return moment.isoformat(timespec="milliseconds") + "Z"
