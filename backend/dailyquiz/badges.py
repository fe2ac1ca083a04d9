"""Achievement badges.

Each badge is a value record with a pure predicate over one :class:`QuizStats`
snapshot. Evaluation skips badges the user already holds, so running it twice
on the same snapshot never awards anything twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .quiz_clock import DATE_FORMAT, parse_day
from .quiz_profile import BadgeAward, CompletionEntry, UserProfile


@dataclass(frozen=True)
class QuizStats:
    history: Tuple[CompletionEntry, ...] = ()
    current_streak: int = 0
    max_streak: int = 0
    total_score: int = 0
    quizzes_taken: int = 0
    total_questions_answered: int = 0
    shares: int = 0

    @classmethod
    def from_profile(cls, profile: UserProfile) -> "QuizStats":
        return cls(
            history=tuple(profile.history),
            current_streak=profile.current_streak,
            max_streak=profile.max_streak,
            total_score=profile.total_score,
            quizzes_taken=profile.quizzes_taken,
            total_questions_answered=profile.total_questions_answered,
            shares=profile.shares,
        )


@dataclass(frozen=True)
class BadgeDefinition:
    id: str
    name: str
    description: str
    category: str
    predicate: Callable[[QuizStats], bool]
    requirement: int = 1
    # stat that progress is measured against, for count-based badges
    progress_metric: Optional[str] = None


def _hour(entry: CompletionEntry) -> Optional[int]:
    if not entry.timestamp or len(entry.timestamp) < 2:
        return None
    try:
        return int(entry.timestamp[:2])
    except ValueError:
        return None


def _entry_day(entry: CompletionEntry) -> Optional[date]:
    try:
        return parse_day(entry.date)
    except ValueError:
        return None


def easter_sunday(year: int) -> date:
    """Gregorian Easter (anonymous computus)."""
    a = year % 19
    b, c = divmod(year, 100)
    d, e = divmod(b, 4)
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i, k = divmod(c, 4)
    l = (32 + 2 * e + 2 * i - h - k) % 7  # noqa: E741
    m = (a + 11 * h + 22 * l) // 451
    month, day = divmod(h + l - 7 * m + 114, 31)
    return date(year, month, day + 1)


def _any_entry(stats: QuizStats, check: Callable[[CompletionEntry], bool]) -> bool:
    return any(check(entry) for entry in stats.history)


def _hour_between(low: int, high: int) -> Callable[[QuizStats], bool]:
    def in_window(entry: CompletionEntry) -> bool:
        hour = _hour(entry)
        return hour is not None and low <= hour <= high

    def predicate(stats: QuizStats) -> bool:
        return _any_entry(stats, in_window)

    return predicate


def _came_back_after_zero(stats: QuizStats) -> bool:
    days = {entry.date for entry in stats.history}
    for entry in stats.history:
        if entry.score != 0 or entry.total_questions != 4:
            continue
        day = _entry_day(entry)
        if day is None:
            continue
        if (day + timedelta(days=1)).strftime(DATE_FORMAT) in days:
            return True
    return False


def _month_equals_day(entry: CompletionEntry) -> bool:
    day = _entry_day(entry)
    return day is not None and day.month == day.day


def _hundredth_day(entry: CompletionEntry) -> bool:
    day = _entry_day(entry)
    return day is not None and day.timetuple().tm_yday == 100


def _on_easter(entry: CompletionEntry) -> bool:
    day = _entry_day(entry)
    return day is not None and day == easter_sunday(day.year)


BADGES: Tuple[BadgeDefinition, ...] = (
    BadgeDefinition(
        "first-steps", "First Steps", "Complete your first quiz", "milestones",
        lambda s: s.quizzes_taken >= 1, 1, "quizzes_taken",
    ),
    BadgeDefinition(
        "fellowship", "Fellowship", "Challenge a friend to play the daily quiz", "community",
        lambda s: s.shares >= 1, 1, "shares",
    ),
    BadgeDefinition(
        "lightning-fast", "Lightning Fast", "Complete a quiz in under 10 seconds", "time_based",
        lambda s: _any_entry(s, lambda e: bool(e.duration_seconds) and e.duration_seconds < 10),
    ),
    BadgeDefinition("early-bird", "Early Bird", "Complete a quiz before 6 AM", "time_based", _hour_between(0, 5)),
    BadgeDefinition(
        "night-owl", "Night Owl", "Complete a quiz between 10 PM and midnight", "time_based", _hour_between(22, 23)
    ),
    BadgeDefinition(
        "slow-and-steady", "Slow & Steady", "Take over 10 minutes to complete a quiz", "time_based",
        lambda s: _any_entry(s, lambda e: bool(e.duration_seconds) and e.duration_seconds > 600),
    ),
    BadgeDefinition(
        "dedicated-scholar", "Dedicated Student", "Complete 10 quizzes", "milestones",
        lambda s: s.quizzes_taken >= 10, 10, "quizzes_taken",
    ),
    BadgeDefinition(
        "perfect-quiz", "Perfect Score", "Complete a quiz with all questions correct", "performance",
        lambda s: _any_entry(s, lambda e: e.total_questions > 0 and e.score == e.total_questions),
    ),
    BadgeDefinition(
        "streak-7", "7-Day Streak", "Complete quizzes 7 days in a row", "streaks",
        lambda s: s.max_streak >= 7, 7, "max_streak",
    ),
    BadgeDefinition(
        "make-a-wish", "Make a Wish", "Complete a quiz at exactly 11:11", "time_based",
        lambda s: _any_entry(s, lambda e: bool(e.timestamp) and e.timestamp.startswith(("11:11", "23:11"))),
    ),
    BadgeDefinition(
        "never-give-up", "Never Give Up", "Get 0/4 on a quiz but come back the next day", "special",
        _came_back_after_zero,
    ),
    BadgeDefinition(
        "master-scholar", "Master Scholar", "Complete 50 quizzes", "milestones",
        lambda s: s.quizzes_taken >= 50, 50, "quizzes_taken",
    ),
    BadgeDefinition(
        "community-builder", "Community Builder", "Share the daily quiz with 10 friends", "community",
        lambda s: s.shares >= 10, 10, "shares",
    ),
    BadgeDefinition(
        "streak-30", "30-Day Streak", "Complete quizzes 30 days in a row", "streaks",
        lambda s: s.max_streak >= 30, 30, "max_streak",
    ),
    BadgeDefinition(
        "double-threat", "Double Threat", "Complete a quiz when the month and day match", "holidays",
        lambda s: _any_entry(s, _month_equals_day),
    ),
    BadgeDefinition(
        "century-mark", "Century Mark", "Complete a quiz on the 100th day of the year", "holidays",
        lambda s: _any_entry(s, _hundredth_day),
    ),
    BadgeDefinition(
        "bible-champion", "Bible Champion", "Complete 100 quizzes", "milestones",
        lambda s: s.quizzes_taken >= 100, 100, "quizzes_taken",
    ),
    BadgeDefinition(
        "streak-100", "100-Day Streak", "Complete quizzes 100 days in a row", "streaks",
        lambda s: s.max_streak >= 100, 100, "max_streak",
    ),
    BadgeDefinition(
        "christmas-spirit", "Christmas Spirit", "Complete a quiz on December 25th", "holidays",
        lambda s: _any_entry(s, lambda e: e.date.endswith("-12-25")),
    ),
    BadgeDefinition(
        "easter-devotion", "Easter Devotion", "Complete a quiz on Easter Sunday", "holidays",
        lambda s: _any_entry(s, _on_easter),
    ),
    BadgeDefinition(
        "streak-365", "365-Day Streak", "Complete quizzes for an entire year", "streaks",
        lambda s: s.max_streak >= 365, 365, "max_streak",
    ),
)

BADGES_BY_ID: Dict[str, BadgeDefinition] = {badge.id: badge for badge in BADGES}


def evaluate_new_badges(
    held: Iterable[str],
    stats: QuizStats,
    unlocked_on: str,
    *,
    definitions: Sequence[BadgeDefinition] = BADGES,
) -> List[BadgeAward]:
    """Badges newly earned by ``stats``, in table order, excluding ``held`` ids."""
    held_ids = set(held)
    awarded: List[BadgeAward] = []
    for badge in definitions:
        if badge.id in held_ids:
            continue
        if badge.predicate(stats):
            awarded.append(BadgeAward(id=badge.id, unlocked_on=unlocked_on))
            held_ids.add(badge.id)
    return awarded


def badge_progress(stats: QuizStats, held: Iterable[str] = ()) -> List[Dict[str, object]]:
    held_ids = set(held)
    rows: List[Dict[str, object]] = []
    for badge in BADGES:
        row: Dict[str, object] = {
            "id": badge.id,
            "name": badge.name,
            "description": badge.description,
            "category": badge.category,
            "unlocked": badge.id in held_ids,
            "progress": None,
        }
        if badge.progress_metric:
            current = int(getattr(stats, badge.progress_metric))
            row["progress"] = {
                "current": current,
                "total": badge.requirement,
                "percent": min(round(current / badge.requirement * 100, 1), 100.0),
            }
        rows.append(row)
    return rows


__all__ = [
    "BADGES",
    "BADGES_BY_ID",
    "BadgeDefinition",
    "QuizStats",
    "badge_progress",
    "easter_sunday",
    "evaluate_new_badges",
]
