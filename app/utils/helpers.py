"""Helper utilities for the SysDes auth backend."""

import secrets
from datetime import datetime, timezone
from bson import ObjectId


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime read back from MongoDB to aware UTC.

    MongoDB returns naive UTC datetimes unless the client is tz-aware.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def generate_nonce(nbytes: int = 32) -> str:
    """Random URL-safe nonce."""
    return secrets.token_urlsafe(nbytes)


def parse_object_id(id_str: str) -> ObjectId | None:
    """Convert string to ObjectId, or None when it is not a valid id."""
    if not isinstance(id_str, str) or not ObjectId.is_valid(id_str):
        return None
    return ObjectId(id_str)


def sanitize_return_path(path: str | None) -> str | None:
    """Allow only relative paths like ``/dashboard`` to prevent open redirects."""
    p = (path or "").strip()
    if not p or not p.startswith("/") or p.startswith("//") or "\\" in p:
        return None
    p = p.replace("\r", "").replace("\n", "")
    return p or None
