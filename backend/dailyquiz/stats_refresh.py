"""Scheduled copy of recent tallies from the counter store into the stats cache."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from time import perf_counter
from typing import List, Optional

from .cache import StatsCache
from .counters import CounterStore, CounterStoreError
from .quiz_clock import refresh_window
from .telemetry import emit_event

logger = logging.getLogger(__name__)


@dataclass
class RefreshReport:
    refreshed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


def refresh_stats_cache(
    store: CounterStore,
    cache: StatsCache,
    *,
    now: Optional[datetime] = None,
) -> RefreshReport:
    """Overwrite the cached tally for yesterday, today and tomorrow.

    A date whose read fails keeps whatever entry it already had.
    """
    report = RefreshReport()
    started = perf_counter()
    for day in refresh_window(now):
        try:
            tally = store.read_day(day)
        except CounterStoreError as exc:
            logger.warning("Stats refresh skipped %s: %s", day, exc)
            report.failed.append(day)
            continue
        cache.put(day, tally)
        report.refreshed.append(day)
    emit_event(
        "stats_refresh",
        refreshed=report.refreshed,
        failed=report.failed,
        duration_ms=round((perf_counter() - started) * 1000, 2),
    )
    return report


async def refresh_loop(store: CounterStore, cache: StatsCache, interval_seconds: float) -> None:
    """Refresh forever on a fixed period. Cancelled on application shutdown."""
    if interval_seconds <= 0:
        return
    while True:
        try:
            await asyncio.to_thread(refresh_stats_cache, store, cache)
        except Exception:  # noqa: BLE001
            logger.exception("Scheduled stats refresh crashed")
        await asyncio.sleep(interval_seconds)


__all__ = ["RefreshReport", "refresh_loop", "refresh_stats_cache"]
