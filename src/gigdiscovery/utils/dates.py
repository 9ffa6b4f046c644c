"""Timestamp normalisation for listing data.

Listing sources hand back timestamps in several shapes: ``datetime`` objects
(naive or aware), plain dates, ISO-8601 strings, epoch numbers, Firestore-style
``{"seconds": ..., "nanoseconds": ...}`` mappings and timestamp objects with a
``to_datetime()`` / ``ToDatetime()`` method. ``to_instant`` folds all of them
into one canonical type: a timezone-aware UTC ``datetime``.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Mapping

# Epoch values above this are taken to be milliseconds (JS Date.now() style).
_EPOCH_MS_THRESHOLD = 100_000_000_000


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _from_mapping(value: Mapping[str, Any]) -> datetime:
    seconds = value.get("seconds", value.get("_seconds"))
    if seconds is None:
        raise ValueError(f"Timestamp mapping has no seconds field: {dict(value)!r}")
    nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc) + timedelta(
        microseconds=int(nanos) // 1000
    )


def to_instant(value: Any) -> datetime:
    """Normalise a timestamp-like value to an aware UTC datetime.

    Args:
        value: Any of the supported timestamp representations

    Returns:
        datetime: The same instant, with ``tzinfo=timezone.utc``

    Raises:
        ValueError: If a string or mapping cannot be parsed
        TypeError: If the value has an unsupported type
    """
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, bool):
        raise TypeError("Booleans are not timestamps")
    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= _EPOCH_MS_THRESHOLD else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return _as_utc(datetime.fromisoformat(text))
        except ValueError:
            raise ValueError(f"Unrecognised timestamp string: {value!r}")
    if isinstance(value, Mapping):
        return _from_mapping(value)
    for method in ("to_datetime", "ToDatetime"):
        converter = getattr(value, method, None)
        if callable(converter):
            return _as_utc(converter())
    raise TypeError(f"Unsupported timestamp type: {type(value).__name__}")
