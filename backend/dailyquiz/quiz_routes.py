"""Quiz completion, account and friends endpoints."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import asdict
from typing import Dict, Iterator, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from .badges import QuizStats, badge_progress
from .completion_service import CompletionOutcome
from .friends import FriendshipError, LeaderboardRow
from .quiz_clock import is_day_key, today_key
from .quiz_profile import (
    QUESTIONS_PER_QUIZ,
    BadgeAward,
    CompletionEntry,
    ProfileNotFoundError,
    ProfileStoreError,
    UserProfile,
)
from .reconciler import InvalidCompletionError
from .retry import RetryExhaustedError
from .services import QuizServices, get_services

router = APIRouter(prefix="/api", tags=["quiz"])
logger = logging.getLogger(__name__)


class CompletionRequest(BaseModel):
    user_id: Optional[str] = None
    guest_id: Optional[str] = None
    date: Optional[str] = None
    score: int
    total_questions: int = QUESTIONS_PER_QUIZ
    duration_seconds: Optional[int] = None
    answers: List[int]


class ShareRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    date: Optional[str] = None


class AccountRequest(BaseModel):
    uid: str = Field(..., min_length=1)
    display_name: Optional[str] = Field(default=None, max_length=80)
    guest_id: Optional[str] = None


class FriendRequest(BaseModel):
    friend_uid: str = Field(..., min_length=1)


class ProfilePayload(BaseModel):
    uid: str
    display_name: str
    history: List[CompletionEntry]
    current_streak: int
    max_streak: int
    badges: List[BadgeAward]
    total_score: int
    quizzes_taken: int
    total_questions_answered: int
    shares: int
    friends: List[str]

    @classmethod
    def from_profile(cls, profile: UserProfile) -> "ProfilePayload":
        return cls.model_validate(profile.model_dump(exclude={"created_at", "last_updated"}))


class CompletionResponse(BaseModel):
    profile: ProfilePayload
    entry: Optional[CompletionEntry] = None
    already_completed: bool = False
    new_badges: List[BadgeAward] = Field(default_factory=list)
    guest: bool = False
    deferred: bool = False

    @classmethod
    def from_outcome(cls, outcome: CompletionOutcome) -> "CompletionResponse":
        return cls(
            profile=ProfilePayload.from_profile(outcome.profile),
            entry=outcome.result.entry,
            already_completed=outcome.result.already_completed,
            new_badges=list(outcome.result.new_badges),
            guest=outcome.guest,
            deferred=outcome.deferred,
        )


class BadgeProgressPayload(BaseModel):
    current: int
    total: int
    percent: float


class BadgeStatusPayload(BaseModel):
    id: str
    name: str
    description: str
    category: str
    unlocked: bool
    progress: Optional[BadgeProgressPayload] = None


class ProfileViewResponse(BaseModel):
    profile: ProfilePayload
    badges: List[BadgeStatusPayload]


class FriendSummaryPayload(BaseModel):
    uid: str
    display_name: str
    current_streak: int
    max_streak: int
    total_score: int
    quizzes_taken: int


class LeaderboardRowPayload(BaseModel):
    uid: str
    display_name: str
    score: Optional[int] = None
    total_questions: Optional[int] = None
    current_streak: int = 0
    is_self: bool = False
    rank: Optional[int] = None

    @classmethod
    def from_row(cls, row: LeaderboardRow) -> "LeaderboardRowPayload":
        return cls(**asdict(row))


class LeaderboardResponse(BaseModel):
    date: str
    rows: List[LeaderboardRowPayload]


@contextmanager
def _http_errors() -> Iterator[None]:
    try:
        yield
    except InvalidCompletionError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except FriendshipError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ProfileNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (ProfileStoreError, RetryExhaustedError) as exc:
        logger.warning("Profile store unavailable: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Profile store is temporarily unavailable.",
        ) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


def _friend_summary(profile: UserProfile) -> FriendSummaryPayload:
    return FriendSummaryPayload(
        uid=profile.uid,
        display_name=profile.display_name,
        current_streak=profile.current_streak,
        max_streak=profile.max_streak,
        total_score=profile.total_score,
        quizzes_taken=profile.quizzes_taken,
    )


@router.post("/quiz/complete", response_model=CompletionResponse, status_code=status.HTTP_200_OK)
def complete_quiz(
    payload: CompletionRequest,
    services: QuizServices = Depends(get_services),
) -> CompletionResponse:
    with _http_errors():
        outcome = services.completions.complete(
            user_id=payload.user_id,
            guest_id=payload.guest_id,
            day=payload.date,
            score=payload.score,
            total_questions=payload.total_questions,
            duration_seconds=payload.duration_seconds,
            answers=payload.answers,
        )
    return CompletionResponse.from_outcome(outcome)


@router.post("/quiz/share", response_model=CompletionResponse)
def share_quiz(
    payload: ShareRequest,
    services: QuizServices = Depends(get_services),
) -> CompletionResponse:
    if payload.date is not None and not is_day_key(payload.date):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="date must be YYYY-MM-DD.")
    with _http_errors():
        outcome = services.completions.share(payload.user_id, payload.date)
    return CompletionResponse.from_outcome(outcome)


@router.post("/accounts", response_model=CompletionResponse)
def create_account(
    payload: AccountRequest,
    services: QuizServices = Depends(get_services),
) -> CompletionResponse:
    with _http_errors():
        outcome = services.completions.create_account(payload.uid, payload.display_name, payload.guest_id)
    return CompletionResponse.from_outcome(outcome)


@router.delete("/quiz/session/{key}")
def end_session(key: str, services: QuizServices = Depends(get_services)) -> Dict[str, bool]:
    return {"ended": services.completions.end_session(key)}


@router.get("/profile/{uid}", response_model=ProfileViewResponse)
def read_profile(uid: str, services: QuizServices = Depends(get_services)) -> ProfileViewResponse:
    with _http_errors():
        profile = services.completions.profile_view(uid)
    rows = badge_progress(QuizStats.from_profile(profile), profile.badge_ids())
    return ProfileViewResponse(
        profile=ProfilePayload.from_profile(profile),
        badges=[BadgeStatusPayload.model_validate(row) for row in rows],
    )


@router.get("/profile/{uid}/friends", response_model=List[FriendSummaryPayload])
def list_friends(uid: str, services: QuizServices = Depends(get_services)) -> List[FriendSummaryPayload]:
    with _http_errors():
        friends = services.friends.list_friends(uid)
    return [_friend_summary(friend) for friend in friends]


@router.post("/profile/{uid}/friends", response_model=List[str])
def add_friend(
    uid: str,
    payload: FriendRequest,
    services: QuizServices = Depends(get_services),
) -> List[str]:
    with _http_errors():
        profile = services.friends.add_friend(uid, payload.friend_uid)
    return profile.friends


@router.delete("/profile/{uid}/friends/{friend_uid}", response_model=List[str])
def remove_friend(uid: str, friend_uid: str, services: QuizServices = Depends(get_services)) -> List[str]:
    with _http_errors():
        profile = services.friends.remove_friend(uid, friend_uid)
    return profile.friends


@router.get("/profile/{uid}/friends/leaderboard", response_model=LeaderboardResponse)
def friends_leaderboard(
    uid: str,
    date: Optional[str] = Query(default=None),
    services: QuizServices = Depends(get_services),
) -> LeaderboardResponse:
    day = date or today_key()
    if not is_day_key(day):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="date must be YYYY-MM-DD.")
    with _http_errors():
        rows = services.friends.leaderboard(uid, day)
    return LeaderboardResponse(date=day, rows=[LeaderboardRowPayload.from_row(row) for row in rows])


__all__ = ["router"]
