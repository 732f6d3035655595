"""
Time helpers.
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def epoch_millis(moment: datetime = None) -> int:
    """Milliseconds since the epoch for a naive UTC timestamp."""
    moment = moment or utcnow()
    return int(moment.replace(tzinfo=timezone.utc).timestamp() * 1000)


def to_naive_utc(moment: datetime) -> datetime:
    """Convert an aware timestamp to naive UTC; naive values are assumed UTC."""
    if moment is None or moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)
