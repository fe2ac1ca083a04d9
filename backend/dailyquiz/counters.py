"""Counter Store adapters.

The counter store is the authoritative source for vote and score tallies.
Every adapter exposes the same two primitives: an atomic increment-by-one
at a key and a full read of one day's counters.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, ContextManager, Dict, Optional, Protocol

import httpx
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .db.models import QuizCounterModel
from .db.session import session_scope
from .tally import STATS_ROOT, CounterKey, DailyTally

logger = logging.getLogger(__name__)


class CounterStoreError(RuntimeError):
    """The counter store could not be reached or returned an unusable response."""


class CounterStore(Protocol):
    def increment(self, key: CounterKey) -> None:  # pragma: no cover - protocol definition
        ...

    def read_day(self, day: str) -> DailyTally:  # pragma: no cover - protocol definition
        ...


class InMemoryCounterStore:
    """Process-local counter store for local development and tests."""

    def __init__(self) -> None:
        self._days: Dict[str, DailyTally] = {}
        self._lock = threading.Lock()

    def increment(self, key: CounterKey) -> None:
        with self._lock:
            self._days.setdefault(key.day, DailyTally()).add(key)

    def read_day(self, day: str) -> DailyTally:
        with self._lock:
            tally = self._days.get(day)
            return tally.model_copy(deep=True) if tally else DailyTally()


class SqlCounterStore:
    """Counters kept in the ``quiz_counters`` table.

    An increment is a single ``UPDATE ... SET count = count + 1``. The row is
    created lazily; when two writers race to create it the unique constraint
    rejects the loser, which then retries the ``UPDATE``.
    """

    def __init__(self, scope: Optional[Callable[[], ContextManager[Session]]] = None) -> None:
        self._scope = scope or session_scope

    @staticmethod
    def _bump(session: Session, key: CounterKey) -> bool:
        stmt = (
            update(QuizCounterModel)
            .where(
                QuizCounterModel.day == key.day,
                QuizCounterModel.bucket == key.bucket,
                QuizCounterModel.item == key.item,
            )
            .values(count=QuizCounterModel.count + 1)
        )
        return session.execute(stmt).rowcount > 0

    def increment(self, key: CounterKey) -> None:
        try:
            try:
                with self._scope() as session:
                    if self._bump(session, key):
                        return
                    session.add(QuizCounterModel(day=key.day, bucket=key.bucket, item=key.item, count=1))
                    session.flush()
            except IntegrityError:
                with self._scope() as session:
                    if not self._bump(session, key):
                        raise CounterStoreError(f"Counter {key.path} vanished during increment.")
        except SQLAlchemyError as exc:
            raise CounterStoreError(f"Failed to increment {key.path}: {exc}") from exc

    def read_day(self, day: str) -> DailyTally:
        try:
            with self._scope() as session:
                rows = session.execute(
                    select(QuizCounterModel.bucket, QuizCounterModel.item, QuizCounterModel.count).where(
                        QuizCounterModel.day == day
                    )
                ).all()
        except SQLAlchemyError as exc:
            raise CounterStoreError(f"Failed to read counters for {day}: {exc}") from exc
        payload: Dict[str, Dict[str, int]] = {}
        for bucket, item, count in rows:
            payload.setdefault(bucket, {})[item] = count
        return DailyTally.from_payload(payload)


class RealtimeDatabaseCounterStore:
    """Firebase Realtime Database over its REST API.

    Increments use the server-side ``increment`` value so the database applies
    them atomically; no read happens before the write.
    """

    def __init__(
        self,
        base_url: str,
        secret: Optional[str],
        *,
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._secret = secret
        self._client = client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)

    def _params(self) -> Dict[str, str]:
        return {"auth": self._secret} if self._secret else {}

    def increment(self, key: CounterKey) -> None:
        try:
            response = self._client.put(
                f"/{key.path}.json",
                params=self._params(),
                json={".sv": {"increment": 1}},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise CounterStoreError(f"Failed to increment {key.path}: {exc}") from exc

    def read_day(self, day: str) -> DailyTally:
        try:
            response = self._client.get(f"/{STATS_ROOT}/{day}.json", params=self._params())
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise CounterStoreError(f"Failed to read counters for {day}: {exc}") from exc
        text = response.text.strip()
        if not text or text == "null":
            return DailyTally()
        try:
            payload = response.json()
        except ValueError as exc:
            raise CounterStoreError(f"Counter payload for {day} is not JSON.") from exc
        if not isinstance(payload, dict):
            raise CounterStoreError(f"Counter payload for {day} has unexpected shape.")
        return DailyTally.from_payload(payload)

    def close(self) -> None:
        self._client.close()


def build_counter_store(settings: Optional[Settings] = None) -> CounterStore:
    settings = settings or get_settings()
    if settings.counter_backend == "memory":
        return InMemoryCounterStore()
    if settings.counter_backend == "rtdb":
        if not settings.rtdb_secret:
            logger.warning("QUIZ_RTDB_SECRET is not set; counter reads may be rejected.")
        return RealtimeDatabaseCounterStore(
            settings.rtdb_base_url,
            settings.rtdb_secret,
            timeout=settings.rtdb_timeout_seconds,
        )
    return SqlCounterStore()


__all__ = [
    "CounterStore",
    "CounterStoreError",
    "InMemoryCounterStore",
    "RealtimeDatabaseCounterStore",
    "SqlCounterStore",
    "build_counter_store",
]
