"""Small helpers for naming tables, batching rows and reading durations."""

from __future__ import annotations

import re
import uuid
from datetime import timedelta
from itertools import islice
from typing import Iterable, Iterator, TypeVar

T = TypeVar("T")

# In order of preference
WATERMARK_COLUMNS = ("updated_at", "created_at")

_DURATION_UNITS = {
    "s": "seconds", "sec": "seconds", "second": "seconds",
    "m": "minutes", "min": "minutes", "minute": "minutes",
    "h": "hours", "hour": "hours",
    "d": "days", "day": "days",
    "w": "weeks", "week": "weeks",
}
_DURATION_RE = re.compile(r"^(\d+)\s*([a-z]+?)s?$")


def generate_id(prefix: str = "") -> str:
    """Short random identifier, e.g. ``run_1a2b3c4d``."""
    uid = uuid.uuid4().hex[:8]
    return f"{prefix}_{uid}" if prefix else uid


def parse_duration(duration_str: str) -> timedelta:
    """
    Parse durations such as ``15 minutes``, ``1 hour`` or ``90s``.

    Raises:
        ValueError: If the text is not a count followed by a known unit
    """
    match = _DURATION_RE.match(duration_str.strip().lower())
    unit = _DURATION_UNITS.get(match.group(2)) if match else None
    if unit is None:
        raise ValueError(f"Invalid duration format: {duration_str}")
    return timedelta(**{unit: int(match.group(1))})


def chunk_iterable(iterable: Iterable[T], chunk_size: int) -> Iterator[list[T]]:
    """Yield lists of at most ``chunk_size`` items."""
    iterator = iter(iterable)
    while chunk := list(islice(iterator, chunk_size)):
        yield chunk


def trusted_watermark_column(columns: Iterable[str]) -> str | None:
    """
    Pick the column incremental extraction trusts as its watermark.

    ``updated_at`` wins over ``created_at``; None when neither is present.
    """
    present = set(columns)
    return next((c for c in WATERMARK_COLUMNS if c in present), None)


def prefixed_name(prefix: str, table_name: str) -> str:
    """Target-side table name for a source table."""
    return f"{prefix}{table_name}"
