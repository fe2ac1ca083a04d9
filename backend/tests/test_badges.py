from __future__ import annotations

from datetime import date

import pytest

from dailyquiz.badges import (
    BADGES,
    BADGES_BY_ID,
    QuizStats,
    badge_progress,
    easter_sunday,
    evaluate_new_badges,
)
from dailyquiz.quiz_profile import CompletionEntry


def _stats(*entries: CompletionEntry, **totals) -> QuizStats:
    return QuizStats(history=tuple(entries), **totals)


def _entry(day: str = "2026-02-10", score: int = 3, **extra) -> CompletionEntry:
    return CompletionEntry(date=day, score=score, total_questions=4, **extra)


def _ids(stats: QuizStats, held=()) -> set[str]:
    return {award.id for award in evaluate_new_badges(held, stats, "2026-02-10")}


def test_badge_table_is_complete_and_unique() -> None:
    assert len(BADGES) == 21
    assert len(BADGES_BY_ID) == 21


@pytest.mark.parametrize(
    ("year", "expected"),
    [(2024, date(2024, 3, 31)), (2025, date(2025, 4, 20)), (2026, date(2026, 4, 5)), (2030, date(2030, 4, 21))],
)
def test_easter_sunday(year: int, expected: date) -> None:
    assert easter_sunday(year) == expected


def test_easter_devotion_uses_computed_easter() -> None:
    assert "easter-devotion" in _ids(_stats(_entry("2026-04-05")))
    assert "easter-devotion" not in _ids(_stats(_entry("2026-04-12")))


@pytest.mark.parametrize(
    ("timestamp", "badge", "expected"),
    [
        ("05:59", "early-bird", True),
        ("06:00", "early-bird", False),
        ("22:30", "night-owl", True),
        ("21:59", "night-owl", False),
        ("11:11", "make-a-wish", True),
        ("23:11", "make-a-wish", True),
        ("11:12", "make-a-wish", False),
    ],
)
def test_time_of_day_badges(timestamp: str, badge: str, expected: bool) -> None:
    assert (badge in _ids(_stats(_entry(timestamp=timestamp)))) is expected


def test_duration_badges() -> None:
    assert "lightning-fast" in _ids(_stats(_entry(duration_seconds=9)))
    assert "lightning-fast" not in _ids(_stats(_entry(duration_seconds=0)))
    assert "slow-and-steady" in _ids(_stats(_entry(duration_seconds=601)))
    assert "slow-and-steady" not in _ids(_stats(_entry(duration_seconds=600)))


def test_never_give_up_needs_the_next_calendar_day() -> None:
    zero = _entry("2026-02-28", score=0)
    assert "never-give-up" in _ids(_stats(zero, _entry("2026-03-01")))
    assert "never-give-up" not in _ids(_stats(zero, _entry("2026-03-02")))
    # order of the history does not matter
    assert "never-give-up" in _ids(_stats(_entry("2026-03-01"), zero))


def test_calendar_badges() -> None:
    assert "double-threat" in _ids(_stats(_entry("2026-03-03")))
    assert "century-mark" in _ids(_stats(_entry("2026-04-10")))
    assert "century-mark" in _ids(_stats(_entry("2024-04-09")))
    assert "christmas-spirit" in _ids(_stats(_entry("2026-12-25")))


def test_count_badges_follow_totals() -> None:
    stats = _stats(quizzes_taken=10, shares=10, max_streak=30)
    earned = _ids(stats)
    assert {"first-steps", "dedicated-scholar", "fellowship", "community-builder", "streak-7", "streak-30"} <= earned
    assert "master-scholar" not in earned
    assert "streak-100" not in earned


def test_held_badges_are_not_awarded_again() -> None:
    stats = _stats(quizzes_taken=1)
    assert _ids(stats, held={"first-steps"}) == set()


def test_later_snapshot_never_loses_badges() -> None:
    earlier = _stats(_entry("2026-02-09", score=4), quizzes_taken=1, max_streak=1)
    later = _stats(
        _entry("2026-02-09", score=4),
        _entry("2026-02-10", score=1, timestamp="05:00"),
        quizzes_taken=2,
        max_streak=2,
        shares=1,
    )
    assert _ids(earlier) <= _ids(later)


def test_badge_progress_caps_at_one_hundred_percent() -> None:
    rows = {row["id"]: row for row in badge_progress(_stats(quizzes_taken=12), held={"first-steps"})}

    assert rows["first-steps"]["unlocked"] is True
    assert rows["dedicated-scholar"]["progress"] == {"current": 12, "total": 10, "percent": 100.0}
    assert rows["master-scholar"]["progress"] == {"current": 12, "total": 50, "percent": 24.0}
    assert rows["perfect-quiz"]["progress"] is None
