"""Utility functions for the SysDes auth backend."""

from app.utils.helpers import (
    utcnow,
    as_utc,
    generate_nonce,
    parse_object_id,
    sanitize_return_path,
)

__all__ = [
    "utcnow",
    "as_utc",
    "generate_nonce",
    "parse_object_id",
    "sanitize_return_path",
]
