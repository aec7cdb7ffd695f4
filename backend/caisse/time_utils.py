from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt.replace(tzinfo=None)

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


def _coerce(value) -> datetime | date:
    if isinstance(value, str):
        s = value.strip()
        # A bare calendar day keeps whole-day semantics
        if len(s) == 10:
            return date.fromisoformat(s)
        parsed = parse_iso_datetime(s)
        if parsed is None:
            raise ValueError("invalid date")
        return parsed
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return value
    raise ValueError("invalid date")


def range_start(value) -> datetime:
    """Inclusive lower bound. A calendar day starts at midnight."""
    v = _coerce(value)
    if isinstance(v, datetime):
        return v
    return datetime.combine(v, time.min)


def range_end(value) -> tuple[datetime, bool]:
    """
    Upper bound as (bound, inclusive).

    A calendar day covers the whole day, so it becomes an exclusive bound at
    the next midnight. A datetime is an inclusive bound.
    """
    v = _coerce(value)
    if isinstance(v, datetime):
        return v, True
    return datetime.combine(v + timedelta(days=1), time.min), False
