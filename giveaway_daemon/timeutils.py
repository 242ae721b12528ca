"""Helpers for turning absolute timestamps into elapsed whole minutes and days."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def minutes_since(value: datetime, now: Optional[datetime] = None) -> int:
    now = ensure_utc(now or utcnow())
    return int((now - ensure_utc(value)).total_seconds() // 60)


def days_since(value: datetime, now: Optional[datetime] = None) -> int:
    now = ensure_utc(now or utcnow())
    return (now - ensure_utc(value)).days


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return ensure_utc(datetime.fromisoformat(value))


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return ensure_utc(value).isoformat()
