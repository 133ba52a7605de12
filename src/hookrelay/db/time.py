# src/hookrelay/db/time.py
"""Time utilities for database models and wire payloads."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def to_epoch_ms(value: datetime | None) -> int | None:
    """Return ``value`` as integer milliseconds since the epoch.

    Naive datetimes are treated as UTC, matching what the upstream library hands out.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp() * 1000)
