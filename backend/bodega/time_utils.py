# Overview: UTC clock and the ISO-8601 "Z" timestamps stored on sales, payments and expenses.

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a stored timestamp into a UTC-naive datetime.

    Naive values are taken as UTC; "Z" and numeric offsets are converted.
    None and "" give None.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def day_of(value: Any, utc_offset_minutes: int = 0) -> Optional[str]:
    """
    Calendar day (YYYY-MM-DD) of a stored UTC timestamp, seen from a business
    clock that runs utc_offset_minutes ahead of UTC. None if unreadable.
    """
    if not isinstance(value, str):
        return None
    try:
        parsed = parse_iso_datetime(value)
    except ValueError:
        return None
    if parsed is None:
        return None
    return (parsed + timedelta(minutes=utc_offset_minutes)).date().isoformat()


def today_iso(utc_offset_minutes: int = 0) -> str:
    return (utcnow() + timedelta(minutes=utc_offset_minutes)).date().isoformat()
