"""In-process event hook for the stats pipeline, profile sync and the database pool.

Every event is logged as one ``TELEMETRY {json}`` line, counted by name and
handed to any registered listeners (tests register one to capture events).
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from threading import RLock
from typing import Any, Callable, Dict, List

logger = logging.getLogger("dailyquiz.telemetry")

Listener = Callable[["TelemetryEvent"], None]


@dataclass(frozen=True)
class TelemetryEvent:
    name: str
    payload: Dict[str, Any]
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


_listeners: List[Listener] = []
_counts: Counter = Counter()
_lock = RLock()


def register_listener(listener: Listener) -> None:
    with _lock:
        _listeners.append(listener)


def unregister_listener(listener: Listener) -> None:
    with _lock:
        if listener in _listeners:
            _listeners.remove(listener)


def clear_listeners() -> None:
    with _lock:
        _listeners.clear()


def event_counts() -> Dict[str, int]:
    """How many times each event has fired in this process."""
    with _lock:
        return dict(_counts)


def reset_counts() -> None:
    with _lock:
        _counts.clear()


def _plain(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    return value


def emit_event(name: str, **fields: Any) -> None:
    event = TelemetryEvent(name=name, payload={key: _plain(value) for key, value in fields.items()})
    with _lock:
        _counts[name] += 1
        listeners = tuple(_listeners)

    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", name)

    logger.info("TELEMETRY %s", json.dumps({"event": name, **event.payload}, default=str))


__all__ = [
    "TelemetryEvent",
    "clear_listeners",
    "emit_event",
    "event_counts",
    "register_listener",
    "reset_counts",
    "unregister_listener",
]
