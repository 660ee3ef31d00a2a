from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def tenant_zone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def local_date(value: datetime, zone_name: str | None) -> date:
    """Calendar day of ``value`` in the tenant's timezone."""
    return ensure_utc(value).astimezone(tenant_zone(zone_name)).date()


def to_local(value: datetime | None, zone_name: str | None) -> datetime | None:
    if value is None:
        return None
    return ensure_utc(value).astimezone(tenant_zone(zone_name))


def hours_between(start: datetime, end: datetime, minus_minutes: float = 0.0) -> float:
    seconds = (ensure_utc(end) - ensure_utc(start)).total_seconds() - minus_minutes * 60
    return round(max(seconds, 0.0) / 3600, 2)
