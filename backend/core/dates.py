"""
Calendar-day helpers for streak bookkeeping.

Streaks count calendar days in one fixed reference timezone (STREAK_TIMEZONE,
UTC by default) so that every client agrees on where a day ends. Naive
datetimes are treated as UTC.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo

from backend.core.config import settings


@lru_cache(maxsize=8)
def _zone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def reference_zone(name: Optional[str] = None) -> tzinfo:
    return _zone(name or settings.STREAK_TIMEZONE or "UTC")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def calendar_day(moment: datetime, zone: Optional[tzinfo] = None) -> date:
    """Resolve a timestamp to its calendar date in the reference timezone."""
    return ensure_aware(moment).astimezone(zone or reference_zone()).date()


def today(zone: Optional[tzinfo] = None) -> date:
    return calendar_day(utcnow(), zone)


def days_between(earlier: date, later: date) -> int:
    """Whole calendar days from `earlier` to `later` (negative if reversed)."""
    return (later - earlier).days


def grace_cutoff(reference_date: date) -> date:
    """Last-check-in dates strictly before this day have missed the grace window."""
    return reference_date - timedelta(days=1)
