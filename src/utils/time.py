from datetime import datetime, timedelta, timezone
from typing import Optional


def now_utc() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def expires_in(seconds: int) -> datetime:
    return now_utc() + timedelta(seconds=int(seconds))


def is_expired(value: Optional[datetime]) -> bool:
    if value is None:
        return False
    return ensure_aware(value) <= now_utc()


def isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return ensure_aware(value).isoformat()
