from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional

# Stored datetimes are UTC without tzinfo; everything at the API edge is
# converted to that form on the way in and back to "...Z" on the way out.


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _parse_bound(value: Optional[str], *, upper: bool) -> Optional[datetime]:
    """
    Shared parser for range bounds.

    Accepts "YYYY-MM-DD", naive ISO datetimes (read as UTC) and offset or
    "Z"-suffixed datetimes. A bare date is the start of that day, or its
    last microsecond when upper=True. Raises ValueError on anything else.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()

    if len(text) == 10:
        day = date.fromisoformat(text)
        return datetime.combine(day, time.max if upper else time.min)

    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return _to_naive_utc(datetime.fromisoformat(text))


def parse_range_start(value: Optional[str]) -> Optional[datetime]:
    """Inclusive lower bound of a ?from= filter."""
    return _parse_bound(value, upper=False)


def parse_range_end(value: Optional[str]) -> Optional[datetime]:
    """Inclusive upper bound of a ?to= filter; a bare date covers the whole day."""
    return _parse_bound(value, upper=True)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with a trailing 'Z', second precision. Naive input is UTC."""
    if dt is None:
        return None
    return _to_naive_utc(dt).replace(microsecond=0).isoformat() + "Z"
