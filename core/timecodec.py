"""
core/timecodec.py -- Millisecond Unix timestamp conversion.

Session payloads carry absolute timestamps as integer milliseconds since the
epoch, which keeps them JSON-native and independent of any datetime string
format. Naive datetimes are treated as UTC everywhere in this module.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a naive datetime; aware values are returned unchanged."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_millis(value: datetime) -> int:
    """Return value as whole milliseconds since the Unix epoch."""
    return (as_utc(value) - _EPOCH) // _ONE_MS


def from_millis(millis: int | float) -> datetime:
    """Return an aware UTC datetime for a millisecond timestamp.

    Fractional milliseconds are truncated.
    """
    return _EPOCH + timedelta(milliseconds=int(millis))
