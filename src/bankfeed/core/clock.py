"""Time helpers shared by services and models."""
from collections.abc import Callable
from datetime import datetime, timezone

# Monotonic clock in seconds; injected wherever deadlines or TTLs are checked.
Clock = Callable[[], float]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso8601(value: datetime) -> str:
    """Format a datetime the way the provider API expects (UTC, Z suffix)."""
    return as_utc(value).isoformat().replace("+00:00", "Z")
