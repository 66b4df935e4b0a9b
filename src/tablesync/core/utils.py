"""Time handling shared by watermarks and load actions.

Watermarks are always compared as aware UTC datetimes. Databases that store
``TIMESTAMP WITHOUT TIME ZONE`` hand back naive values, which are taken to
be UTC already.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

# Zero-argument source of "now"; injected into load actions so tests can pin it
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """The default clock."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive values and convert aware ones; None passes through."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """UTC wall time without tzinfo, for comparing against naive columns."""
    dt = ensure_utc(dt)
    return None if dt is None else dt.replace(tzinfo=None)


def parse_iso(iso_string: str) -> datetime:
    """
    Parse a stored watermark timestamp.

    Accepts a trailing ``Z``; values without an offset are read as UTC.
    """
    if iso_string.endswith("Z"):
        iso_string = iso_string[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(iso_string))


__all__ = [
    "Clock",
    "utc_now",
    "ensure_utc",
    "to_naive_utc",
    "parse_iso",
]
