"""Instant helpers shared by the calendar modules.

All instants inside the application are aware UTC datetimes. Naive values
coming from callers are taken to already be UTC.
"""
from datetime import UTC, datetime


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_iso(value: datetime) -> str:
    """Serialize an instant for JSON storage (exdates)."""
    return as_utc(value).isoformat()


def from_iso(value: str) -> datetime:
    return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
