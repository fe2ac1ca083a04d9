"""The single read path for daily tallies: cache first, counter store second, empty last."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Optional

from .cache import StatsCache
from .counters import CounterStore
from .tally import DailyTally
from .telemetry import emit_event

logger = logging.getLogger(__name__)


class StatsGateway:
    def __init__(
        self,
        cache: StatsCache,
        store: CounterStore,
        *,
        fallback_timeout: float = 2.0,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self._cache = cache
        self._store = store
        self._fallback_timeout = fallback_timeout
        self._executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="stats-fallback")

    def fetch_stats(self, day: str) -> DailyTally:
        """Return the tally for ``day``. Never raises.

        A cold or unreadable cache entry falls through to the counter store,
        bounded by the fallback timeout. If that also fails the caller gets an
        empty tally ("no data yet") instead of an error.
        """
        try:
            entry = self._cache.get(day)
        except ValueError:
            logger.info("Rejected stats lookup for malformed date %r", day)
            return DailyTally()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Stats cache unavailable for %s: %s", day, exc)
            entry = None

        if entry is not None:
            try:
                return entry.tally()
            except ValueError as exc:
                logger.warning("Discarding unreadable cache entry for %s: %s", day, exc)

        return self._read_through(day)

    def _read_through(self, day: str) -> DailyTally:
        future = self._executor.submit(self._store.read_day, day)
        try:
            tally = future.result(timeout=self._fallback_timeout)
        except FutureTimeout:
            future.cancel()
            logger.warning("Counter store read for %s timed out after %.1fs", day, self._fallback_timeout)
            emit_event("stats_fallback", day=day, outcome="timeout")
            return DailyTally()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Counter store read for %s failed: %s", day, exc)
            emit_event("stats_fallback", day=day, outcome="error", error=exc)
            return DailyTally()
        emit_event("stats_fallback", day=day, outcome="hit")
        return tally

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)


__all__ = ["StatsGateway"]
