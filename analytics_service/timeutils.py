"""
Timestamp helpers.

Everything read from the document store is normalized to a timezone-aware UTC
``datetime`` so that window arithmetic never has to guess what it was handed.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from .errors import InvalidInputError

# Epoch values above this are treated as milliseconds (year 5138 in seconds).
_MILLISECONDS_THRESHOLD = 1e11


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def normalize_timestamp(value: Any) -> Optional[datetime]:
    """Convert a stored or client supplied timestamp into an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), epoch seconds or
    milliseconds, ISO-8601 strings (a trailing ``Z`` is allowed) and
    ``{"seconds": ..., "nanoseconds": ...}`` mappings as produced by hosted
    document stores.

    Raises:
        InvalidInputError: If the value cannot be interpreted as a timestamp
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, bool):
        raise InvalidInputError(f"Unsupported timestamp value: {value!r}")

    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) > _MILLISECONDS_THRESHOLD else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)

    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise InvalidInputError(f"Invalid ISO timestamp: {value!r}") from exc
        return normalize_timestamp(parsed)

    if isinstance(value, dict) and "seconds" in value:
        seconds = value["seconds"] + value.get("nanoseconds", 0) / 1e9
        return datetime.fromtimestamp(seconds, tz=timezone.utc)

    raise InvalidInputError(f"Unsupported timestamp value: {value!r}")
