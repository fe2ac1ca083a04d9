from __future__ import annotations

from concurrent.futures import wait

from dailyquiz.counters import CounterStoreError, InMemoryCounterStore
from dailyquiz.tally import CounterKey
from dailyquiz.tally_writer import VoteTallyWriter


class BrokenStore(InMemoryCounterStore):
    def increment(self, key: CounterKey) -> None:
        raise CounterStoreError("counter store offline")


def test_completion_records_every_vote_and_the_score() -> None:
    store = InMemoryCounterStore()
    writer = VoteTallyWriter(store)
    try:
        futures = writer.record_completion("2026-02-10", [0, 2, 1, 3], 3)
        wait(futures)
    finally:
        writer.shutdown()

    assert len(futures) == 5
    tally = store.read_day("2026-02-10")
    assert tally.answer_counts == {0: {0: 1}, 1: {2: 1}, 2: {1: 1}, 3: {3: 1}}
    assert tally.score_counts == {3: 1}


def test_malformed_votes_are_dropped_without_raising() -> None:
    store = InMemoryCounterStore()
    writer = VoteTallyWriter(store)
    try:
        assert writer.record_vote("2026-02-10", -1, 0) is None
        assert writer.record_score("2026-02-10", -2) is None
    finally:
        writer.shutdown()
    assert store.read_day("2026-02-10").is_empty()


def test_store_failures_are_reported_and_swallowed(telemetry_events) -> None:
    writer = VoteTallyWriter(BrokenStore())
    try:
        future = writer.record_vote("2026-02-10", 0, 1)
        assert future is not None
        assert future.result(timeout=5) is None
    finally:
        writer.shutdown()

    dropped = [event for event in telemetry_events if event.name == "vote_tally_dropped"]
    assert dropped[0].payload["key"] == "quiz_stats/2026-02-10/q0/1"


def test_votes_after_shutdown_are_dropped() -> None:
    writer = VoteTallyWriter(InMemoryCounterStore())
    writer.shutdown()
    assert writer.record_vote("2026-02-10", 0, 1) is None
