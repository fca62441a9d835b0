"""Common domain types."""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC now; all stored timestamps are naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def clamp01(value: float) -> float:
    """Clamp to [0, 1]; NaN collapses to 0."""
    if value != value:
        return 0.0
    return max(0.0, min(1.0, value))


def clamp(value: float, low: float, high: float) -> float:
    if value != value:
        return 0.0
    return max(low, min(high, value))


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed to be UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
