from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from .errors import ValidationError


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


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


def iso_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def hhmm(value: Optional[time]) -> Optional[str]:
    return value.strftime("%H:%M") if value is not None else None


def parse_date(value, field: str = "date") -> date:
    """
    Accept a date, a datetime or a "YYYY-MM-DD" string.

    Raises ValidationError for anything else.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"{field} must be a YYYY-MM-DD date")


def parse_time(value, field: str = "time") -> time:
    """Accept a time or an "HH:MM" string."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if isinstance(value, str) and value.strip():
        try:
            return datetime.strptime(value.strip(), "%H:%M").time()
        except ValueError:
            pass
    raise ValidationError(f"{field} must be an HH:MM time")


def package_end_date(start: date, duration_days: int) -> date:
    """Last valid day of a package: the start day counts as day one."""
    return start + timedelta(days=duration_days - 1)


def week_days(base: date) -> list[date]:
    """Monday..Sunday of the week containing base."""
    monday = base - timedelta(days=base.weekday())
    return [monday + timedelta(days=i) for i in range(7)]
