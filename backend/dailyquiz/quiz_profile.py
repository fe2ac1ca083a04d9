"""Quiz profile models and the durable profile store."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from .db.session import session_scope

logger = logging.getLogger(__name__)

QUESTIONS_PER_QUIZ = 4

# Fields the completion flow owns. Every durable write sends all of them so a
# repeated write is harmless.
SYNC_FIELDS = (
    "history",
    "current_streak",
    "max_streak",
    "badges",
    "total_score",
    "quizzes_taken",
    "total_questions_answered",
    "shares",
)


if TYPE_CHECKING:
    from .repositories.user_profiles import UserProfileRepository


def _repo() -> "UserProfileRepository":
    from .repositories.user_profiles import user_profiles as repository

    return repository


def _now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_uid(value: str) -> str:
    normalized = value.strip() if isinstance(value, str) else ""
    if not normalized:
        raise ValueError("User id cannot be empty.")
    return normalized


class ProfileStoreError(RuntimeError):
    """Transient failure talking to the profile store."""


class ProfileNotFoundError(LookupError):
    pass


class CompletionEntry(BaseModel):
    date: str
    score: int
    total_questions: int = QUESTIONS_PER_QUIZ
    timestamp: Optional[str] = None
    duration_seconds: Optional[int] = None
    answers: List[int] = Field(default_factory=list)
    shared: bool = False


class BadgeAward(BaseModel):
    id: str
    unlocked_on: str


class UserProfile(BaseModel):
    uid: str
    display_name: str = "Anonymous"
    history: List[CompletionEntry] = Field(default_factory=list)
    current_streak: int = 0
    max_streak: int = 0
    badges: List[BadgeAward] = Field(default_factory=list)
    total_score: int = 0
    quizzes_taken: int = 0
    total_questions_answered: int = 0
    shares: int = 0
    friends: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    last_updated: datetime = Field(default_factory=_now)

    def entry_for(self, day: str) -> Optional[CompletionEntry]:
        for entry in self.history:
            if entry.date == day:
                return entry
        return None

    def badge_ids(self) -> Set[str]:
        return {badge.id for badge in self.badges}

    def sync_fields(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", include=set(SYNC_FIELDS))


class PendingCompletion(BaseModel):
    """A guest's reconciled quiz state, held until an account exists to own it."""

    guest_id: str
    profile: UserProfile
    new_badges: List[BadgeAward] = Field(default_factory=list)
    # answers per day whose votes are not counted yet
    untallied: Dict[str, List[int]] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_now)


class ProfileStore:
    """Durable profile documents: read, create and partial update by id."""

    @staticmethod
    def _clone(profile: UserProfile) -> UserProfile:
        return profile.model_copy(deep=True)

    def get(self, uid: str) -> Optional[UserProfile]:
        try:
            with session_scope(commit=False) as session:
                profile = _repo().get(session, uid)
                return self._clone(profile) if profile else None
        except SQLAlchemyError as exc:
            raise ProfileStoreError(f"Failed to load profile {uid}: {exc}") from exc

    def create(self, profile: UserProfile) -> UserProfile:
        """Create ``profile`` unless one already exists; return the stored document."""
        try:
            with session_scope() as session:
                stored = _repo().create(session, profile)
                return self._clone(stored)
        except SQLAlchemyError as exc:
            raise ProfileStoreError(f"Failed to create profile {profile.uid}: {exc}") from exc

    def update_fields(self, uid: str, fields: Dict[str, Any]) -> UserProfile:
        try:
            with session_scope() as session:
                stored = _repo().update_fields(session, uid, fields)
                return self._clone(stored)
        except SQLAlchemyError as exc:
            raise ProfileStoreError(f"Failed to update profile {uid}: {exc}") from exc

    def delete(self, uid: str) -> bool:
        try:
            with session_scope() as session:
                return _repo().delete(session, uid)
        except SQLAlchemyError as exc:
            raise ProfileStoreError(f"Failed to delete profile {uid}: {exc}") from exc


__all__ = [
    "BadgeAward",
    "CompletionEntry",
    "PendingCompletion",
    "ProfileNotFoundError",
    "ProfileStore",
    "ProfileStoreError",
    "QUESTIONS_PER_QUIZ",
    "SYNC_FIELDS",
    "UserProfile",
    "normalize_uid",
]
