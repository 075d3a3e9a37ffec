"""Date coercion for upstream records.

Upstream extraction hands over dates as ISO-8601 strings, native date or
datetime objects, epoch numbers, or timestamp objects from document stores.
Everything goes through ``coerce_date`` before series are built.
"""

from datetime import date, datetime, timezone
from typing import Any

# Epoch values above this are treated as milliseconds (year 2286 in seconds)
_EPOCH_MS_THRESHOLD = 10_000_000_000


def _from_epoch(value: float) -> date:
    if abs(value) >= _EPOCH_MS_THRESHOLD:
        value = value / 1000.0
    return datetime.fromtimestamp(value, tz=timezone.utc).date()


def _from_string(value: str) -> date:
    text = value.strip()
    if not text:
        raise ValueError("Empty date string")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        # Bare dates with trailing junk such as "2024-03-01 (Fri)"
        parsed = datetime.strptime(text[:10], "%Y-%m-%d")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()


def coerce_date(value: Any) -> date:
    """
    Normalize any supported date representation to a calendar date.

    Timezone-aware values are converted to UTC before truncation.

    Raises:
        ValueError: If the value cannot be interpreted as a date.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Cannot interpret boolean as date: {value!r}")
    if isinstance(value, (int, float)):
        return _from_epoch(float(value))
    if isinstance(value, str):
        return _from_string(value)

    # Timestamp-like objects (Firestore Timestamp, pandas Timestamp, ...)
    to_datetime = getattr(value, "to_datetime", None)
    if callable(to_datetime):
        return coerce_date(to_datetime())
    timestamp = getattr(value, "timestamp", None)
    if callable(timestamp):
        return _from_epoch(float(timestamp()))
    seconds = getattr(value, "seconds", None)
    if isinstance(seconds, (int, float)):
        return _from_epoch(float(seconds))

    raise ValueError(f"Unsupported date value: {value!r}")
