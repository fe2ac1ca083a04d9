"""Process-wide wiring of caches, stores and services."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from .cache import SessionProfileCache, StatsCache
from .completion_service import CompletionService
from .config import Settings, get_settings
from .counters import CounterStore, build_counter_store
from .friends import FriendService
from .quiz_profile import ProfileStore, ProfileStoreError
from .retry import policy_from_settings
from .stats_gateway import StatsGateway
from .tally_writer import VoteTallyWriter

logger = logging.getLogger(__name__)


@dataclass
class QuizServices:
    settings: Settings
    stats_cache: StatsCache
    counter_store: CounterStore
    gateway: StatsGateway
    tally_writer: VoteTallyWriter
    sessions: SessionProfileCache
    completions: CompletionService
    friends: FriendService

    def shutdown(self) -> None:
        self.completions.shutdown(wait=False)
        self.tally_writer.shutdown(wait=False)
        self.gateway.shutdown()
        close = getattr(self.counter_store, "close", None)
        if callable(close):
            close()


def build_services(
    settings: Optional[Settings] = None,
    *,
    counter_store: Optional[CounterStore] = None,
    profile_store: Optional[ProfileStore] = None,
) -> QuizServices:
    settings = settings or get_settings()
    counter_store = counter_store or build_counter_store(settings)
    profile_store = profile_store or ProfileStore()
    retry_policy = policy_from_settings(settings, retry_on=(ProfileStoreError,))
    stats_cache = StatsCache()
    sessions = SessionProfileCache()
    tally_writer = VoteTallyWriter(counter_store)
    return QuizServices(
        settings=settings,
        stats_cache=stats_cache,
        counter_store=counter_store,
        gateway=StatsGateway(
            stats_cache,
            counter_store,
            fallback_timeout=settings.stats_fallback_timeout_seconds,
        ),
        tally_writer=tally_writer,
        sessions=sessions,
        completions=CompletionService(profile_store, sessions, tally_writer, retry_policy=retry_policy),
        friends=FriendService(profile_store, sessions, retry_policy=retry_policy),
    )


_services: Optional[QuizServices] = None
_services_lock = threading.Lock()


def get_services() -> QuizServices:
    global _services
    with _services_lock:
        if _services is None:
            _services = build_services()
            logger.info("Quiz services ready (counter backend: %s)", _services.settings.counter_backend)
        return _services


def reset_services() -> None:
    """Shut down and forget the process-wide services."""
    global _services
    with _services_lock:
        if _services is not None:
            _services.shutdown()
        _services = None


__all__ = ["QuizServices", "build_services", "get_services", "reset_services"]
