"""Pool counters for the quiz database, reported as ``db_pool_status`` events."""

from __future__ import annotations

import os
import threading
import time
from dataclasses import dataclass, field
from typing import Dict

from sqlalchemy import event
from sqlalchemy.engine import Engine

from ..telemetry import emit_event

_TELEMETRY_INTERVAL = float(os.getenv("QUIZ_DB_TELEMETRY_INTERVAL", "30"))


@dataclass
class PoolCounters:
    connects: int = 0
    checkouts: int = 0
    checkins: int = 0
    last_emit: float = 0.0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def in_use(self) -> int:
        return max(self.checkouts - self.checkins, 0)

    def as_dict(self) -> Dict[str, int]:
        return {
            "connects": self.connects,
            "checkouts": self.checkouts,
            "checkins": self.checkins,
            "in_use": self.in_use,
        }


_counters: Dict[int, PoolCounters] = {}


def _pool_status(engine: Engine) -> str:
    try:
        return engine.pool.status()  # type: ignore[no-untyped-call]
    except Exception as exc:  # pragma: no cover
        return f"unavailable: {exc}"


def _bump(engine: Engine, counters: PoolCounters, attribute: str, trigger: str) -> None:
    now = time.time()
    with counters.lock:
        setattr(counters, attribute, getattr(counters, attribute) + 1)
        if _TELEMETRY_INTERVAL > 0 and now - counters.last_emit < _TELEMETRY_INTERVAL:
            return
        counters.last_emit = now
        payload = counters.as_dict()
    emit_event("db_pool_status", status=_pool_status(engine), event=trigger, **payload)


def instrument_engine(engine: Engine) -> None:
    """Count pool traffic for ``engine``; idempotent per engine."""
    if id(engine) in _counters:
        return
    counters = _counters[id(engine)] = PoolCounters()

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        _bump(engine, counters, "connects", "db_pool_connect")

    @event.listens_for(engine, "checkout")
    def _on_checkout(dbapi_connection, connection_record, connection_proxy) -> None:  # type: ignore[no-untyped-def]
        _bump(engine, counters, "checkouts", "db_pool_checkout")

    @event.listens_for(engine, "checkin")
    def _on_checkin(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        with counters.lock:
            counters.checkins += 1

    @event.listens_for(engine, "engine_disposed")
    def _on_dispose(disposed) -> None:  # type: ignore[no-untyped-def]
        _counters.pop(id(disposed), None)


def get_pool_snapshot(engine: Engine) -> Dict[str, object]:
    """Pool status string plus the counters for ``engine`` (zeros if not instrumented)."""
    counters = _counters.get(id(engine), PoolCounters())
    return {"status": _pool_status(engine), **counters.as_dict()}


__all__ = ["PoolCounters", "get_pool_snapshot", "instrument_engine"]
