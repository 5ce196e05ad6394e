"""Conversions between wall-clock time and the Messages store's native epoch."""

from __future__ import annotations

from datetime import datetime, timezone

# Apple's Core Data epoch offset (2001-01-01 vs 1970-01-01)
APPLE_EPOCH_OFFSET = 978307200

NANOSECONDS_PER_SECOND = 1_000_000_000
NANOSECONDS_PER_DAY = 86_400 * NANOSECONDS_PER_SECOND

# Stores written before macOS 10.13 keep seconds instead of nanoseconds.
_SECONDS_CUTOFF = 1e12


def threshold(days_back: int | float, now: datetime | None = None) -> int:
    """Native timestamp for ``days_back`` days before ``now``.

    ``days_back = 0`` returns "now", which filters out every stored message.
    """
    now = now or datetime.now(timezone.utc)
    now_native = int((now.timestamp() - APPLE_EPOCH_OFFSET) * NANOSECONDS_PER_SECOND)
    return now_native - int(days_back * NANOSECONDS_PER_DAY)


def to_datetime(native: int | float | None) -> datetime | None:
    """Convert a native timestamp to an aware UTC datetime."""
    if not native:
        return None
    seconds = float(native)
    if abs(seconds) > _SECONDS_CUTOFF:
        seconds = seconds / NANOSECONDS_PER_SECOND
    try:
        return datetime.fromtimestamp(seconds + APPLE_EPOCH_OFFSET, tz=timezone.utc)
    except (OSError, ValueError, OverflowError):
        return None


def to_readable(native: int | float | None) -> str:
    """``YYYY-MM-DD HH:MM:SS`` (UTC), or ``""`` when there is no timestamp."""
    dt = to_datetime(native)
    return dt.strftime("%Y-%m-%d %H:%M:%S") if dt else ""


def to_compact(native: int | float | None) -> str:
    """``M/D H:MM`` for single-line message listings."""
    dt = to_datetime(native)
    if dt is None:
        return ""
    return f"{dt.month}/{dt.day} {dt.hour}:{dt.minute:02d}"


def to_date(native: int | float | None) -> str:
    """Calendar day (``YYYY-MM-DD``) a message falls on."""
    dt = to_datetime(native)
    return dt.date().isoformat() if dt else ""


def from_datetime(dt: datetime) -> int:
    """Native (nanosecond) timestamp for a datetime; naive values are taken as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int((dt.timestamp() - APPLE_EPOCH_OFFSET) * NANOSECONDS_PER_SECOND)
