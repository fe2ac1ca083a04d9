"""Read-optimised key/value cache for daily answer and score tallies."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

from ..quiz_clock import is_day_key
from ..tally import DailyTally


def _normalize_day(day: str) -> str:
    normalized = day.strip() if isinstance(day, str) else day
    if not is_day_key(normalized):
        raise ValueError(f"Stats cache keys must be YYYY-MM-DD dates, got {day!r}.")
    return normalized


def cache_key(day: str) -> str:
    return f"stats:{_normalize_day(day)}"


@dataclass(frozen=True)
class CacheEntry:
    payload: str
    cached_at: datetime

    def tally(self) -> DailyTally:
        return DailyTally.from_json(self.payload)


class StatsCache:
    """Process-local snapshot store filled by the refresh job.

    Entries are whole serialized tallies; ``put`` always overwrites.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, day: str) -> Optional[CacheEntry]:
        key = cache_key(day)
        with self._lock:
            return self._entries.get(key)

    def put(self, day: str, tally: DailyTally, *, cached_at: Optional[datetime] = None) -> CacheEntry:
        key = cache_key(day)
        entry = CacheEntry(payload=tally.to_json(), cached_at=cached_at or datetime.now(timezone.utc))
        with self._lock:
            self._entries[key] = entry
        return entry

    def invalidate(self, day: str) -> None:
        key = cache_key(day)
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


__all__ = ["CacheEntry", "StatsCache", "cache_key"]
