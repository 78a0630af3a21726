from __future__ import annotations

from datetime import date, datetime, time, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """"YYYY-MM-DD" (a longer ISO datetime is cut to its date) -> date; None / "" -> None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise TypeError(f"expected an ISO date string, got {type(value).__name__}")
    s = value.strip()
    if not s:
        return None
    return date.fromisoformat(s[:10])


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


def business_tz(name: str | None) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def to_local(dt_utc: datetime, tz: tzinfo) -> datetime:
    """UTC-naive -> aware wall-clock time in tz."""
    return dt_utc.replace(tzinfo=timezone.utc).astimezone(tz)


def local_to_utc(dt_local: datetime, tz: tzinfo) -> datetime:
    """Naive wall-clock time in tz -> UTC-naive."""
    if dt_local.tzinfo is None:
        dt_local = dt_local.replace(tzinfo=tz)
    return dt_local.astimezone(timezone.utc).replace(tzinfo=None)


def start_of_local_day(day: date, hour: int, tz: tzinfo) -> datetime:
    """UTC-naive instant of `hour`:00 wall-clock on `day` in tz."""
    return local_to_utc(datetime.combine(day, time(hour=hour)), tz)
