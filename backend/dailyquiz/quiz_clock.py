"""Calendar helpers for the quiz reference clock.

Every calendar decision in the backend (tally keys, the refresh window,
completion dates and streak evaluation) goes through this module so they
all agree on where a day begins.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .config import get_settings

DATE_FORMAT = "%Y-%m-%d"


def quiz_zone(name: Optional[str] = None) -> ZoneInfo:
    candidate = name or get_settings().quiz_timezone
    try:
        return ZoneInfo(candidate)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def quiz_now(now: Optional[datetime] = None) -> datetime:
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(quiz_zone())


def today_key(now: Optional[datetime] = None) -> str:
    return quiz_now(now).strftime(DATE_FORMAT)


def clock_stamp(now: Optional[datetime] = None) -> str:
    """Return the ``HH:MM`` wall-clock stamp stored on completion entries."""
    return quiz_now(now).strftime("%H:%M")


def parse_day(value: str) -> date:
    return datetime.strptime(value, DATE_FORMAT).date()


def is_day_key(value: object) -> bool:
    if not isinstance(value, str) or len(value) != 10:
        return False
    try:
        parse_day(value)
    except ValueError:
        return False
    return True


def shift_day(value: str, days: int) -> str:
    return (parse_day(value) + timedelta(days=days)).strftime(DATE_FORMAT)


def refresh_window(now: Optional[datetime] = None) -> List[str]:
    """Yesterday, today and tomorrow on the quiz clock."""
    today = today_key(now)
    return [shift_day(today, -1), today, shift_day(today, 1)]


__all__ = [
    "DATE_FORMAT",
    "clock_stamp",
    "is_day_key",
    "parse_day",
    "quiz_now",
    "quiz_zone",
    "refresh_window",
    "shift_day",
    "today_key",
]
