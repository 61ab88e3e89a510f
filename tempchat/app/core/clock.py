"""Time helpers shared by the lifecycle and expiry code."""
from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""

    return datetime.now(timezone.utc)


def ensure_aware(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the store."""

    # SQLite drops tzinfo on the way back; every stored value is UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_remaining(seconds: float) -> str:
    """Render a coarse time-remaining label such as ``29 min`` or ``3 hours``."""

    minutes = max(int(seconds // 60), 0)
    if minutes < 60:
        return f"{minutes} min"
    if minutes < 1440:
        hours = minutes // 60
        return f"{hours} hour" if hours == 1 else f"{hours} hours"
    days = minutes // 1440
    return f"{days} day" if days == 1 else f"{days} days"
