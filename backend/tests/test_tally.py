from __future__ import annotations

import pytest

from dailyquiz.tally import DailyTally, score_key, vote_key


def test_counter_key_paths() -> None:
    assert vote_key("2026-02-10", 0, 2).path == "quiz_stats/2026-02-10/q0/2"
    assert score_key("2026-02-10", 3).path == "quiz_stats/2026-02-10/scores/3"


@pytest.mark.parametrize(("question", "answer"), [(-1, 0), (0, -1)])
def test_vote_key_rejects_negative_ids(question: int, answer: int) -> None:
    with pytest.raises(ValueError):
        vote_key("2026-02-10", question, answer)


def test_payload_parsing_and_rendering() -> None:
    tally = DailyTally.from_payload({"q0": {"2": 5, "0": 1}, "q3": [4, None, 2], "scores": {"3": 7}})

    assert tally.answer_counts == {0: {0: 1, 2: 5}, 3: {0: 4, 2: 2}}
    assert tally.score_counts == {3: 7}
    assert tally.to_payload() == {
        "q0": {"0": 1, "2": 5},
        "q3": {"0": 4, "2": 2},
        "scores": {"3": 7},
    }


def test_legacy_answer_keys_are_folded_into_answer_ids() -> None:
    tally = DailyTally.from_payload({"q1": {"2026-02-11_q1_a2": 3, "2": 1}})
    assert tally.answer_counts == {1: {2: 4}}


def test_malformed_entries_are_dropped() -> None:
    tally = DailyTally.from_payload(
        {"q0": {"1": -2, "2": "many", "x": 3, "3": True}, "junk": {"1": 1}, "scores": "oops"}
    )
    assert tally.is_empty()


def test_json_round_trip_preserves_counts() -> None:
    tally = DailyTally()
    tally.add(vote_key("2026-02-10", 0, 1))
    tally.add(vote_key("2026-02-10", 0, 1))
    tally.add(score_key("2026-02-10", 4))

    restored = DailyTally.from_json(tally.to_json())

    assert restored == tally
    assert restored.answer_counts[0][1] == 2
