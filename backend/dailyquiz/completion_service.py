"""Completion orchestration: optimistic local state plus background durable sync.

The session-local profile is authoritative for an active session. Durable
writes only ever converge the store toward it; a failed sync is reported and
never rolls the local state back.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from .cache import SessionProfileCache
from .quiz_clock import clock_stamp, today_key
from .quiz_profile import (
    QUESTIONS_PER_QUIZ,
    BadgeAward,
    PendingCompletion,
    ProfileNotFoundError,
    ProfileStore,
    ProfileStoreError,
    UserProfile,
    normalize_uid,
)
from .reconciler import (
    CompletionResult,
    InvalidCompletionError,
    complete,
    current_streak,
    merge_pending,
    record_share,
    validate_completion,
)
from .retry import RetryExhaustedError, RetryPolicy
from .tally_writer import VoteTallyWriter
from .telemetry import emit_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionOutcome:
    key: str
    result: CompletionResult
    guest: bool = False
    # held locally because the profile store could not be reached
    deferred: bool = False
    sync: Optional[Future] = None
    tallies: Tuple[Future, ...] = ()

    @property
    def profile(self) -> UserProfile:
        return self.result.profile


@dataclass
class _KeyLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


def _session_key(value: Optional[str], label: str) -> str:
    try:
        return normalize_uid(value or "")
    except ValueError as exc:
        raise InvalidCompletionError(f"{label} cannot be empty.") from exc


class CompletionService:
    def __init__(
        self,
        store: ProfileStore,
        local: SessionProfileCache,
        tally_writer: Optional[VoteTallyWriter] = None,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._local = local
        self._tally_writer = tally_writer
        self._retry = retry_policy or RetryPolicy(retry_on=(ProfileStoreError,))
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="profile-sync")
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._guard = threading.Lock()
        # entries live only while a caller holds or waits on them
        self._locks: Dict[str, _KeyLock] = {}
        # sequence bookkeeping is dropped once no sync is in flight for a uid
        self._scheduled: Dict[str, int] = {}
        self._written: Dict[str, int] = {}
        self._inflight: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    def complete(
        self,
        *,
        score: int,
        answers: Sequence[int],
        user_id: Optional[str] = None,
        guest_id: Optional[str] = None,
        day: Optional[str] = None,
        total_questions: int = QUESTIONS_PER_QUIZ,
        duration_seconds: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> CompletionOutcome:
        """Reconcile one finished quiz for a signed-in user or a guest."""
        if (user_id is None) == (guest_id is None):
            raise InvalidCompletionError("Provide exactly one of user_id or guest_id.")
        moment = now or self._clock()
        today = today_key(moment)
        day = day or today
        answers = list(answers)
        validate_completion(day, score, total_questions, duration_seconds, answers)
        fields = dict(
            day=day,
            score=score,
            total_questions=total_questions,
            duration_seconds=duration_seconds,
            answers=answers,
            today=today,
            timestamp=clock_stamp(moment),
        )

        if guest_id is not None:
            key = _session_key(guest_id, "guest_id")
            with self._locked(key):
                result = self._complete_pending(key, key, fields)
            outcome = CompletionOutcome(key=key, result=result, guest=True)
        else:
            uid = _session_key(user_id, "user_id")
            with self._locked(uid):
                # one attempt only; the deferred hold covers an outage
                profile = self._load_profile(uid, today, retry=False)
                if profile is None:
                    logger.warning("Profile store unreachable for %s; holding completion locally", uid)
                    result = self._complete_pending(self._deferred_key(uid), uid, fields, hold_tallies=True)
                    outcome = CompletionOutcome(key=uid, result=result, deferred=True)
                else:
                    result = complete(profile, **fields)
                    self._local.set_profile(result.profile)
                    sync = self._schedule_sync(result.profile)
                    outcome = CompletionOutcome(key=uid, result=result, sync=sync)

        # deferred votes are counted at merge time, once the day is known to be new
        if outcome.result.already_completed or outcome.deferred or self._tally_writer is None:
            return outcome
        tallies = self._tally_writer.record_completion(day, answers, score)
        return CompletionOutcome(
            key=outcome.key,
            result=outcome.result,
            guest=outcome.guest,
            deferred=outcome.deferred,
            sync=outcome.sync,
            tallies=tuple(tallies),
        )

    def share(self, uid: str, day: Optional[str] = None, *, now: Optional[datetime] = None) -> CompletionOutcome:
        uid = _session_key(uid, "user_id")
        today = today_key(now or self._clock())
        with self._locked(uid):
            profile = self._require_profile(uid, today)
            result = record_share(profile, day or today)
            sync = None
            if result.entry is not None:
                self._local.set_profile(result.profile)
                sync = self._schedule_sync(result.profile)
        return CompletionOutcome(key=uid, result=result, sync=sync)

    def create_account(
        self,
        uid: str,
        display_name: Optional[str] = None,
        guest_id: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> CompletionOutcome:
        """Create the profile for ``uid`` and fold in any pending guest completion.

        Creation is idempotent: an existing profile is reused, never reset.
        """
        uid = _session_key(uid, "uid")
        name = (display_name or "").strip() or "Anonymous"
        today = today_key(now or self._clock())
        with self._locked(uid):
            stored = self._retry.call(
                lambda: self._store.create(UserProfile(uid=uid, display_name=name)),
                name=f"profile_create:{uid}",
                sleep=self._sleep,
            )
            base = self._local.get_profile(uid) or stored
            pending = self._local.pop_pending(guest_id.strip()) if guest_id and guest_id.strip() else None
            if pending is None:
                self._local.set_profile(base)
                return CompletionOutcome(
                    key=uid,
                    result=CompletionResult(profile=base, entry=None, already_completed=False),
                )
            result = merge_pending(base, pending, today=today)
            self._local.set_profile(result.profile)
            sync = self._schedule_sync(result.profile)
        logger.info("Merged guest session %s into profile %s", pending.guest_id, uid)
        return CompletionOutcome(key=uid, result=result, sync=sync)

    def end_session(self, key: str) -> bool:
        """Forget local state for ``key``. In-flight syncs are left to finish."""
        key = key.strip()
        removed = self._local.discard(key)
        removed_deferred = self._local.pop_pending(self._deferred_key(key)) is not None
        return removed or removed_deferred

    def profile_view(self, uid: str, *, now: Optional[datetime] = None) -> UserProfile:
        """The session view of ``uid`` with the streak evaluated against today."""
        uid = _session_key(uid, "uid")
        today = today_key(now or self._clock())
        with self._locked(uid):
            profile = self._require_profile(uid, today)
        profile.current_streak = current_streak(profile.history, today)
        return profile

    def pending_for(self, guest_id: str) -> Optional[PendingCompletion]:
        return self._local.get_pending(guest_id.strip())

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    @staticmethod
    def _deferred_key(uid: str) -> str:
        return f"deferred:{uid}"

    @contextmanager
    def _locked(self, key: str) -> Iterator[None]:
        """Serialize work on ``key``; the lock entry is dropped with its last holder."""
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyLock()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    self._locks.pop(key, None)

    def _complete_pending(
        self,
        pending_key: str,
        owner: str,
        fields: Dict[str, object],
        *,
        hold_tallies: bool = False,
    ) -> CompletionResult:
        pending = self._local.get_pending(pending_key)
        result = complete(pending.profile if pending else None, uid=owner, **fields)
        earned: List[BadgeAward] = list(pending.new_badges) if pending else []
        earned.extend(result.new_badges)
        untallied = dict(pending.untallied) if pending else {}
        if hold_tallies and not result.already_completed and result.entry is not None:
            untallied[result.entry.date] = list(result.entry.answers)
        record = PendingCompletion(
            guest_id=pending_key,
            profile=result.profile,
            new_badges=earned,
            untallied=untallied,
        )
        if pending is not None:
            record.created_at = pending.created_at
        self._local.set_pending(record)
        return result

    def _load_profile(self, uid: str, today: str, *, retry: bool = True) -> Optional[UserProfile]:
        """Local profile, else the durable one. ``None`` means the store is unreachable."""
        profile = self._local.get_profile(uid)
        if profile is not None:
            return profile
        try:
            if retry:
                stored = self._retry.call(
                    lambda: self._store.get(uid),
                    name=f"profile_load:{uid}",
                    sleep=self._sleep,
                )
            else:
                stored = self._store.get(uid)
        except (RetryExhaustedError, ProfileStoreError) as exc:
            logger.warning("Could not load profile %s: %s", uid, exc)
            return None
        if stored is None:
            raise ProfileNotFoundError(f"Profile '{uid}' was not found.")

        deferred = self._local.pop_pending(self._deferred_key(uid))
        if deferred is not None:
            known = {entry.date for entry in stored.history}
            stored = merge_pending(stored, deferred, today=today).profile
            self._schedule_sync(stored)
            self._tally_held(deferred, known)
            logger.info("Applied %s locally held completion(s) to %s", len(deferred.profile.history), uid)
        self._local.set_profile(stored)
        return stored

    def _tally_held(self, deferred: PendingCompletion, known: Set[str]) -> None:
        """Count votes for held completions whose day the durable profile did not have."""
        if self._tally_writer is None:
            return
        for day, answers in sorted(deferred.untallied.items()):
            entry = deferred.profile.entry_for(day)
            if day in known or entry is None:
                continue
            self._tally_writer.record_completion(day, answers, entry.score)

    def _require_profile(self, uid: str, today: str) -> UserProfile:
        profile = self._load_profile(uid, today)
        if profile is None:
            raise ProfileStoreError(f"Profile store is unavailable for {uid}.")
        return profile

    def _schedule_sync(self, profile: UserProfile) -> Optional[Future]:
        uid = profile.uid
        with self._guard:
            sequence = self._scheduled.get(uid, 0) + 1
            self._scheduled[uid] = sequence
            self._inflight[uid] = self._inflight.get(uid, 0) + 1
        fields = profile.sync_fields()
        try:
            return self._executor.submit(self._sync, uid, sequence, fields)
        except RuntimeError as exc:
            self._sync_finished(uid)
            logger.error("Profile sync for %s could not be scheduled: %s", uid, exc)
            emit_event("profile_sync_failed", uid=uid, sequence=sequence, error=exc)
            return None

    def _sync_finished(self, uid: str) -> None:
        with self._guard:
            remaining = self._inflight.get(uid, 0) - 1
            if remaining > 0:
                self._inflight[uid] = remaining
                return
            # nothing older can still land, so numbering may restart
            self._inflight.pop(uid, None)
            self._scheduled.pop(uid, None)
            self._written.pop(uid, None)

    def _sync(self, uid: str, sequence: int, fields: Dict[str, object]) -> bool:
        try:
            return self._write_sync(uid, sequence, fields)
        finally:
            self._sync_finished(uid)

    def _write_sync(self, uid: str, sequence: int, fields: Dict[str, object]) -> bool:
        with self._locked(f"sync:{uid}"):
            with self._guard:
                if self._written.get(uid, 0) > sequence:
                    logger.debug("Skipping stale profile sync %s for %s", sequence, uid)
                    return False
            try:
                self._retry.call(
                    lambda: self._store.update_fields(uid, fields),
                    name=f"profile_sync:{uid}",
                    sleep=self._sleep,
                )
            except RetryExhaustedError as exc:
                logger.error("Profile sync for %s gave up after %s attempts: %s", uid, exc.attempts, exc.last_error)
                emit_event("profile_sync_failed", uid=uid, sequence=sequence, attempts=exc.attempts, error=exc.last_error)
                return False
            except ProfileNotFoundError as exc:
                logger.error("Profile sync for %s has no durable document: %s", uid, exc)
                emit_event("profile_sync_failed", uid=uid, sequence=sequence, attempts=1, error=exc)
                return False
            with self._guard:
                self._written[uid] = max(self._written.get(uid, 0), sequence)
        emit_event("profile_sync_completed", uid=uid, sequence=sequence)
        return True


__all__ = ["CompletionOutcome", "CompletionService"]
