"""
Timestamp helpers - UTC, fixed microsecond precision, strictly increasing.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

_clock_lock = threading.Lock()
_last_issued: Optional[datetime] = None


def utc_now() -> datetime:
    """Current UTC time, never equal to or earlier than a previously issued value."""
    global _last_issued
    with _clock_lock:
        now = datetime.now(timezone.utc)
        if _last_issued is not None and now <= _last_issued:
            now = _last_issued + timedelta(microseconds=1)
        _last_issued = now
        return now


def to_iso(value: Union[datetime, str]) -> str:
    """Render a datetime as UTC ISO-8601 with microseconds.

    Naive datetimes are treated as UTC. The fixed width keeps lexical and
    chronological ordering identical, which the stores rely on for range
    filters and sorting.
    """
    if isinstance(value, str):
        value = parse_iso(value)
    return as_utc(value).isoformat(timespec="microseconds")


def as_utc(value: datetime) -> datetime:
    """Convert to an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 string, accepting a trailing 'Z'."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(value))


def now_iso() -> str:
    """Current UTC time as an ISO string."""
    return to_iso(utc_now())
