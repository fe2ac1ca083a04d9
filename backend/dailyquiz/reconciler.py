"""Pure reconciliation of quiz completions into profile statistics.

Nothing here performs I/O. Each function takes the current profile state and
returns a reconciled copy; callers decide where the copy is stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from .badges import QuizStats, evaluate_new_badges
from .quiz_clock import is_day_key, shift_day
from .quiz_profile import (
    QUESTIONS_PER_QUIZ,
    BadgeAward,
    CompletionEntry,
    PendingCompletion,
    UserProfile,
)


class InvalidCompletionError(ValueError):
    """Completion input that would corrupt profile state if accepted."""


@dataclass(frozen=True)
class CompletionResult:
    profile: UserProfile
    entry: Optional[CompletionEntry]
    already_completed: bool
    new_badges: List[BadgeAward] = field(default_factory=list)


def current_streak(history: Iterable[CompletionEntry], today: str) -> int:
    """Consecutive days with an entry, counting back from ``today``.

    Always a full recomputation so out-of-order backfills cannot skew it.
    """
    days = {entry.date for entry in history}
    streak = 0
    cursor = today
    while cursor in days:
        streak += 1
        cursor = shift_day(cursor, -1)
    return streak


def validate_completion(
    day: str,
    score: int,
    total_questions: int,
    duration_seconds: Optional[int],
    answers: Sequence[int],
) -> None:
    if not is_day_key(day):
        raise InvalidCompletionError(f"Completion date must be YYYY-MM-DD, got {day!r}.")
    if len(answers) != QUESTIONS_PER_QUIZ:
        raise InvalidCompletionError(
            f"Expected {QUESTIONS_PER_QUIZ} answers, got {len(answers)}."
        )
    for answer in answers:
        if isinstance(answer, bool) or not isinstance(answer, int) or answer < 0:
            raise InvalidCompletionError(f"Answer ids must be non-negative integers, got {answer!r}.")
    if isinstance(total_questions, bool) or not isinstance(total_questions, int) or total_questions <= 0:
        raise InvalidCompletionError("total_questions must be a positive integer.")
    if isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= total_questions:
        raise InvalidCompletionError(f"Score {score!r} is outside 0..{total_questions}.")
    if duration_seconds is not None and duration_seconds < 0:
        raise InvalidCompletionError("duration_seconds cannot be negative.")


def _award(profile: UserProfile, unlocked_on: str) -> List[BadgeAward]:
    awarded = evaluate_new_badges(profile.badge_ids(), QuizStats.from_profile(profile), unlocked_on)
    profile.badges.extend(awarded)
    return awarded


def complete(
    profile: Optional[UserProfile],
    day: str,
    score: int,
    total_questions: int,
    duration_seconds: Optional[int],
    answers: Sequence[int],
    *,
    today: str,
    timestamp: Optional[str] = None,
    uid: str = "guest",
) -> CompletionResult:
    """Merge one finished quiz into ``profile``.

    A date already in the history only has its duration and answers
    refreshed; score, totals and the original timestamp stay as they were.
    Badges are evaluated before that refresh, so a re-view cannot earn
    anything the original attempt did not.
    """
    validate_completion(day, score, total_questions, duration_seconds, answers)
    updated = profile.model_copy(deep=True) if profile else UserProfile(uid=uid)

    existing = updated.entry_for(day)
    already_completed = existing is not None
    if existing is not None:
        entry = existing
    else:
        entry = CompletionEntry(
            date=day,
            score=score,
            total_questions=total_questions,
            timestamp=timestamp,
            duration_seconds=duration_seconds,
            answers=list(answers),
        )
        updated.history.append(entry)

    updated.current_streak = current_streak(updated.history, today)
    updated.max_streak = max(updated.max_streak, updated.current_streak)

    if not already_completed:
        updated.total_score += score
        updated.quizzes_taken += 1
        updated.total_questions_answered += total_questions

    new_badges = _award(updated, day)
    if existing is not None:
        existing.duration_seconds = duration_seconds
        existing.answers = list(answers)
    return CompletionResult(
        profile=updated,
        entry=entry.model_copy(),
        already_completed=already_completed,
        new_badges=new_badges,
    )


def record_share(profile: UserProfile, day: str) -> CompletionResult:
    """Mark the quiz for ``day`` as shared and count the share.

    Without an entry for ``day`` there is nothing to share and the profile
    comes back unchanged.
    """
    updated = profile.model_copy(deep=True)
    entry = updated.entry_for(day)
    if entry is None:
        return CompletionResult(profile=updated, entry=None, already_completed=False)
    entry.shared = True
    updated.shares += 1
    new_badges = _award(updated, day)
    return CompletionResult(profile=updated, entry=entry.model_copy(), already_completed=True, new_badges=new_badges)


def merge_pending(profile: UserProfile, pending: PendingCompletion, *, today: str) -> CompletionResult:
    """Fold a guest's pending quiz state into an account profile additively.

    Dates the profile already has are skipped so no day is counted twice.
    """
    updated = profile.model_copy(deep=True)
    known_days = {entry.date for entry in updated.history}
    merged_any = False
    for entry in pending.profile.history:
        if entry.date in known_days:
            continue
        updated.history.append(entry.model_copy())
        known_days.add(entry.date)
        updated.total_score += entry.score
        updated.quizzes_taken += 1
        updated.total_questions_answered += entry.total_questions
        merged_any = True

    updated.shares += pending.profile.shares
    held = updated.badge_ids()
    for badge in pending.profile.badges:
        if badge.id not in held:
            updated.badges.append(badge.model_copy())
            held.add(badge.id)

    updated.current_streak = current_streak(updated.history, today)
    updated.max_streak = max(updated.max_streak, pending.profile.max_streak, updated.current_streak)
    new_badges = _award(updated, today)
    last_entry = pending.profile.history[-1] if pending.profile.history else None
    return CompletionResult(
        profile=updated,
        entry=last_entry.model_copy() if last_entry else None,
        already_completed=not merged_any,
        new_badges=new_badges,
    )


__all__ = [
    "CompletionResult",
    "InvalidCompletionError",
    "complete",
    "current_streak",
    "merge_pending",
    "record_share",
    "validate_completion",
]
