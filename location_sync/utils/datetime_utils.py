"""Datetime helpers for cache timestamps and API responses.
- All timestamps are written as aware UTC.
- Serialize API datetimes as UTC with Z so clients interpret as UTC."""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as aware UTC."""
    return datetime.now(timezone.utc)


def serialize_datetime_utc(v: datetime) -> str:
    """Serialize datetime for API JSON: always UTC with Z (ISO 8601)."""
    if v.tzinfo is None:
        return v.isoformat() + "Z"
    return v.astimezone(timezone.utc).replace(tzinfo=None).isoformat() + "Z"
