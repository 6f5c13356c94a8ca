"""Common domain types."""
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import uuid4

Clock = Callable[[], datetime]


def generate_id() -> str:
    """Generate a new UUID string."""
    return str(uuid4())


def utcnow() -> datetime:
    """Naive UTC now (all persisted timestamps are naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_epoch_ms(value: datetime) -> int:
    """Naive-UTC datetime -> epoch milliseconds."""
    return int(value.replace(tzinfo=timezone.utc).timestamp() * 1000)


def from_epoch_ms(value: float) -> datetime:
    """Epoch milliseconds -> naive-UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(tzinfo=None)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Best-effort conversion of a change-feed timestamp to naive UTC.

    Accepts datetimes, epoch milliseconds (int/float or numeric strings), ISO-8601
    strings, and serialized document-store timestamps ({"seconds": ..} or {"_seconds": ..}).
    Returns None for anything else.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, (int, float)):
        return from_epoch_ms(value) if value > 0 else None
    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        if isinstance(seconds, (int, float)):
            return from_epoch_ms(seconds * 1000)
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.isdigit():
            return from_epoch_ms(int(text))
        try:
            return parse_timestamp(datetime.fromisoformat(text.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None
