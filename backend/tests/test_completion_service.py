from __future__ import annotations

import threading
from concurrent.futures import wait
from datetime import datetime, timezone

import pytest

from dailyquiz.cache import SessionProfileCache
from dailyquiz.completion_service import CompletionService
from dailyquiz.counters import InMemoryCounterStore
from dailyquiz.quiz_profile import ProfileNotFoundError, UserProfile
from dailyquiz.reconciler import InvalidCompletionError
from dailyquiz.tally_writer import VoteTallyWriter
from fakes import FakeProfileStore, no_sleep

NOW = datetime(2026, 2, 10, 16, 0, tzinfo=timezone.utc)
ANSWERS = [0, 1, 2, 3]


@pytest.fixture
def harness():
    store = FakeProfileStore()
    counters = InMemoryCounterStore()
    writer = VoteTallyWriter(counters)
    service = CompletionService(store, SessionProfileCache(), writer, sleep=no_sleep)
    yield store, counters, service
    service.shutdown()
    writer.shutdown()


def test_completion_is_applied_locally_and_synced(harness) -> None:
    store, counters, service = harness
    store.add(UserProfile(uid="u1", display_name="Ruth"))

    outcome = service.complete(user_id="u1", score=3, answers=ANSWERS, duration_seconds=30, now=NOW)

    assert outcome.profile.quizzes_taken == 1
    assert outcome.result.entry.date == "2026-02-10"
    # 16:00 UTC is 11:00 on the New York quiz clock
    assert outcome.result.entry.timestamp == "11:00"
    assert outcome.sync.result(timeout=5) is True
    stored = store.storage["u1"]
    assert stored.quizzes_taken == 1
    assert stored.total_score == 3
    assert stored.display_name == "Ruth"

    wait(outcome.tallies)
    tally = counters.read_day("2026-02-10")
    assert tally.answer_counts == {0: {0: 1}, 1: {1: 1}, 2: {2: 1}, 3: {3: 1}}
    assert tally.score_counts == {3: 1}


def test_failed_sync_never_rolls_back_local_state(harness, telemetry_events) -> None:
    store, _, service = harness
    store.add(UserProfile(uid="u1"))
    store.fail_writes = 10

    outcome = service.complete(user_id="u1", score=4, answers=ANSWERS, now=NOW)

    assert outcome.sync.result(timeout=5) is False
    assert store.storage["u1"].quizzes_taken == 0
    view = service.profile_view("u1", now=NOW)
    assert view.quizzes_taken == 1
    assert view.current_streak == 1
    assert "perfect-quiz" in view.badge_ids()
    failed = [event for event in telemetry_events if event.name == "profile_sync_failed"]
    assert failed and failed[0].payload["uid"] == "u1"


def test_sync_recovers_from_transient_write_failures(harness) -> None:
    store, _, service = harness
    store.add(UserProfile(uid="u1"))
    store.fail_writes = 2

    outcome = service.complete(user_id="u1", score=2, answers=ANSWERS, now=NOW)

    assert outcome.sync.result(timeout=5) is True
    assert store.storage["u1"].total_score == 2


def test_repeat_completion_is_not_tallied_twice(harness) -> None:
    store, counters, service = harness
    store.add(UserProfile(uid="u1"))

    first = service.complete(user_id="u1", score=3, answers=ANSWERS, duration_seconds=40, now=NOW)
    second = service.complete(user_id="u1", score=3, answers=[3, 3, 3, 3], duration_seconds=80, now=NOW)
    wait(first.tallies)
    second.sync.result(timeout=5)

    assert second.result.already_completed is True
    assert second.tallies == ()
    assert counters.read_day("2026-02-10").score_counts == {3: 1}
    stored = store.storage["u1"]
    assert stored.quizzes_taken == 1
    assert stored.history[0].answers == [3, 3, 3, 3]


def test_guest_completion_is_merged_when_the_account_is_created(harness) -> None:
    store, _, service = harness

    guest = service.complete(guest_id="guest-7", score=3, answers=ANSWERS, duration_seconds=20, now=NOW)

    assert guest.guest is True
    assert guest.sync is None
    assert store.storage == {}
    assert service.pending_for("guest-7") is not None

    account = service.create_account("u9", "Naomi", guest_id="guest-7", now=NOW)

    assert account.sync.result(timeout=5) is True
    stored = store.storage["u9"]
    assert stored.display_name == "Naomi"
    assert stored.total_score == 3
    assert stored.quizzes_taken == 1
    assert stored.total_questions_answered == 4
    assert stored.current_streak == 1
    assert "first-steps" in {badge.id for badge in stored.badges}
    assert service.pending_for("guest-7") is None


def test_create_account_never_resets_an_existing_profile(harness) -> None:
    store, _, service = harness
    store.add(UserProfile(uid="u1", display_name="Ruth", quizzes_taken=5, total_score=12))

    outcome = service.create_account("u1", "Someone Else", now=NOW)

    assert outcome.profile.quizzes_taken == 5
    assert outcome.profile.display_name == "Ruth"
    assert store.storage["u1"].total_score == 12


def test_completion_is_held_locally_while_the_store_is_unreachable(harness) -> None:
    store, _, service = harness
    store.add(UserProfile(uid="u1", quizzes_taken=2, total_score=6, total_questions_answered=8))
    store.always_fail = True

    outcome = service.complete(user_id="u1", score=4, answers=ANSWERS, now=NOW)

    assert outcome.deferred is True
    assert outcome.profile.quizzes_taken == 1

    store.always_fail = False
    view = service.profile_view("u1", now=NOW)
    assert view.quizzes_taken == 3
    assert view.total_score == 10

    service.shutdown()
    assert store.storage["u1"].quizzes_taken == 3


def test_share_counts_and_syncs(harness) -> None:
    store, _, service = harness
    store.add(UserProfile(uid="u1"))
    service.complete(user_id="u1", score=3, answers=ANSWERS, now=NOW)

    outcome = service.share("u1", now=NOW)

    assert outcome.profile.shares == 1
    assert "fellowship" in {badge.id for badge in outcome.result.new_badges}
    assert outcome.sync.result(timeout=5) is True
    assert store.storage["u1"].shares == 1


def test_end_session_drops_local_state(harness) -> None:
    store, _, service = harness
    store.add(UserProfile(uid="u1"))
    outcome = service.complete(user_id="u1", score=3, answers=ANSWERS, now=NOW)
    outcome.sync.result(timeout=5)
    service.complete(guest_id="guest-1", score=1, answers=ANSWERS, now=NOW)

    assert service.end_session("u1") is True
    assert service.end_session("guest-1") is True
    assert service.end_session("nobody") is False
    assert service.pending_for("guest-1") is None
    # reloaded from the durable copy
    assert service.profile_view("u1", now=NOW).quizzes_taken == 1


def test_unknown_user_and_bad_identity(harness) -> None:
    _, _, service = harness
    with pytest.raises(ProfileNotFoundError):
        service.complete(user_id="ghost", score=1, answers=ANSWERS, now=NOW)
    with pytest.raises(InvalidCompletionError):
        service.complete(score=1, answers=ANSWERS, now=NOW)
    with pytest.raises(InvalidCompletionError):
        service.complete(user_id="u1", guest_id="g1", score=1, answers=ANSWERS, now=NOW)
    with pytest.raises(InvalidCompletionError):
        service.complete(guest_id="g1", score=9, answers=ANSWERS, now=NOW)


def test_same_day_completions_racing_for_one_user_count_once(harness) -> None:
    store, counters, service = harness
    store.add(UserProfile(uid="u1"))
    workers = 8
    barrier = threading.Barrier(workers)
    outcomes = []
    outcomes_lock = threading.Lock()

    def finish_quiz() -> None:
        barrier.wait()
        outcome = service.complete(user_id="u1", score=3, answers=ANSWERS, now=NOW)
        with outcomes_lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=finish_quiz) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(outcomes) == workers
    assert sum(not outcome.result.already_completed for outcome in outcomes) == 1
    for outcome in outcomes:
        wait(outcome.tallies)
        outcome.sync.result(timeout=5)
    view = service.profile_view("u1", now=NOW)
    assert view.quizzes_taken == 1
    assert len(view.history) == 1
    assert store.storage["u1"].quizzes_taken == 1
    assert counters.read_day("2026-02-10").score_counts == {3: 1}


def test_repeat_while_store_is_down_after_session_end_is_not_tallied(harness) -> None:
    store, counters, service = harness
    store.add(UserProfile(uid="u1"))
    first = service.complete(user_id="u1", score=3, answers=ANSWERS, duration_seconds=40, now=NOW)
    first.sync.result(timeout=5)
    wait(first.tallies)
    service.end_session("u1")
    store.always_fail = True

    again = service.complete(user_id="u1", score=3, answers=ANSWERS, duration_seconds=12, now=NOW)

    assert again.deferred is True
    assert again.tallies == ()
    store.always_fail = False
    view = service.profile_view("u1", now=NOW)
    assert view.quizzes_taken == 1
    assert view.total_score == 3
    service.shutdown()
    assert counters.read_day("2026-02-10").score_counts == {3: 1}
    assert store.storage["u1"].quizzes_taken == 1


def test_held_completion_for_a_new_day_is_tallied_once_it_merges() -> None:
    store = FakeProfileStore()
    store.add(UserProfile(uid="u1"))
    counters = InMemoryCounterStore()
    writer = VoteTallyWriter(counters)
    sleeps: list[float] = []
    service = CompletionService(store, SessionProfileCache(), writer, sleep=sleeps.append)
    store.fail_reads = 1

    held = service.complete(user_id="u1", score=2, answers=ANSWERS, now=NOW)

    # a single read attempt, no backoff on the request path
    assert held.deferred is True
    assert sleeps == []
    assert held.tallies == ()
    assert counters.read_day("2026-02-10").is_empty()

    view = service.profile_view("u1", now=NOW)
    service.shutdown()
    writer.shutdown()

    assert view.quizzes_taken == 1
    assert store.storage["u1"].total_score == 2
    tally = counters.read_day("2026-02-10")
    assert tally.score_counts == {2: 1}
    assert tally.answer_counts == {0: {0: 1}, 1: {1: 1}, 2: {2: 1}, 3: {3: 1}}


def test_finished_sessions_leave_no_lock_or_sequence_entries(harness) -> None:
    store, _, service = harness
    for index in range(500):
        guest = f"guest-{index}"
        service.complete(guest_id=guest, score=1, answers=ANSWERS, now=NOW)
        service.end_session(guest)

    assert service._locks == {}

    store.add(UserProfile(uid="u1"))
    first = service.complete(user_id="u1", score=3, answers=ANSWERS, now=NOW)
    second = service.share("u1", now=NOW)
    first.sync.result(timeout=5)
    second.sync.result(timeout=5)
    service.end_session("u1")

    assert service._locks == {}
    assert service._scheduled == {}
    assert service._written == {}
    assert service._inflight == {}
    assert store.storage["u1"].shares == 1
