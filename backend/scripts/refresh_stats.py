"""Cron entry point for the hourly stats refresh.

The stats cache lives inside the API process, so by default this script asks
the running API to refresh itself through ``POST /internal/stats/refresh``.
``--local`` instead reads the refresh window straight from the counter store
and prints what a refresh would publish, which is handy for checking that the
counter store is reachable.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Optional

import httpx

LOGGER = logging.getLogger("dailyquiz.refresh")
DEFAULT_API_URL = os.getenv("QUIZ_API_URL", "http://127.0.0.1:8000")
DEFAULT_TIMEOUT = float(os.getenv("QUIZ_REFRESH_TIMEOUT_SECONDS", "30"))


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Refresh the daily quiz stats cache.")
    parser.add_argument(
        "--api-url",
        default=DEFAULT_API_URL,
        help=f"Base URL of the running API (default: {DEFAULT_API_URL}).",
    )
    parser.add_argument(
        "--secret",
        default=os.getenv("QUIZ_REFRESH_SECRET"),
        help="Shared refresh secret (default: QUIZ_REFRESH_SECRET).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help=f"HTTP timeout in seconds (default: {DEFAULT_TIMEOUT}).",
    )
    parser.add_argument(
        "--local",
        action="store_true",
        help="Read the refresh window from the counter store in this process instead of calling the API.",
    )
    return parser.parse_args(argv)


def trigger_remote_refresh(
    api_url: str,
    secret: str,
    *,
    timeout: float,
    client: Optional[httpx.Client] = None,
) -> dict:
    owned = client is None
    client = client or httpx.Client(timeout=timeout)
    try:
        response = client.post(
            f"{api_url.rstrip('/')}/internal/stats/refresh",
            headers={"X-Refresh-Secret": secret},
        )
        response.raise_for_status()
        return response.json()
    finally:
        if owned:
            client.close()


def run_local_refresh() -> dict:
    from dailyquiz.cache import StatsCache
    from dailyquiz.counters import build_counter_store
    from dailyquiz.stats_refresh import refresh_stats_cache

    store = build_counter_store()
    cache = StatsCache()
    try:
        report = refresh_stats_cache(store, cache)
    finally:
        close = getattr(store, "close", None)
        if callable(close):
            close()
    tallies = {}
    for day in report.refreshed:
        entry = cache.get(day)
        tallies[day] = entry.tally().to_payload() if entry else {}
    return {"refreshed": report.refreshed, "failed": report.failed, "tallies": tallies}


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=os.getenv("QUIZ_LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    args = parse_args(argv)
    try:
        if args.local:
            result = run_local_refresh()
        else:
            if not args.secret:
                LOGGER.error("A refresh secret is required; set QUIZ_REFRESH_SECRET or pass --secret.")
                return 2
            result = trigger_remote_refresh(args.api_url, args.secret, timeout=args.timeout)
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Stats refresh failed: %s", exc)
        return 1
    print(json.dumps(result, indent=2, sort_keys=True))
    return 0 if not result.get("failed") else 1


if __name__ == "__main__":
    sys.exit(main())
