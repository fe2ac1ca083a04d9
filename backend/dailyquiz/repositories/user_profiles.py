"""Database-backed user profile repository."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.models import UserProfileModel
from ..quiz_profile import (
    SYNC_FIELDS,
    BadgeAward,
    CompletionEntry,
    ProfileNotFoundError,
    UserProfile,
    normalize_uid,
)

_UPDATABLE_FIELDS = frozenset(SYNC_FIELDS) | {"friends", "display_name"}


class UserProfileRepository:
    """Persistence helper for the ``user_profiles`` table."""

    def get(self, session: Session, uid: str) -> UserProfile | None:
        model = self._find(session, uid)
        if model is None:
            return None
        return self._to_domain(model)

    def create(self, session: Session, profile: UserProfile) -> UserProfile:
        normalized = normalize_uid(profile.uid)
        existing = self._find(session, normalized)
        if existing is not None:
            return self._to_domain(existing)
        model = UserProfileModel(uid=normalized)
        self._apply(model, profile.model_dump(mode="json", include=set(_UPDATABLE_FIELDS)))
        model.created_at = profile.created_at
        model.last_updated = datetime.now(timezone.utc)
        session.add(model)
        session.flush()
        return self._to_domain(model)

    def update_fields(self, session: Session, uid: str, fields: Dict[str, Any]) -> UserProfile:
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported profile fields: {sorted(unknown)}")
        model = self._find(session, uid)
        if model is None:
            raise ProfileNotFoundError(f"Profile '{uid}' was not found.")
        self._apply(model, fields)
        model.last_updated = datetime.now(timezone.utc)
        session.flush()
        return self._to_domain(model)

    def delete(self, session: Session, uid: str) -> bool:
        model = self._find(session, uid)
        if model is None:
            return False
        session.delete(model)
        session.flush()
        return True

    @staticmethod
    def _find(session: Session, uid: str) -> Optional[UserProfileModel]:
        normalized = normalize_uid(uid)
        stmt = select(UserProfileModel).where(UserProfileModel.uid == normalized)
        return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def _apply(model: UserProfileModel, fields: Dict[str, Any]) -> None:
        for name, value in fields.items():
            if name == "history":
                value = [CompletionEntry.model_validate(entry).model_dump(mode="json") for entry in value]
            elif name == "badges":
                value = [BadgeAward.model_validate(badge).model_dump(mode="json") for badge in value]
            elif name == "friends":
                value = list(dict.fromkeys(value))
            setattr(model, name, value)

    @staticmethod
    def _to_domain(model: UserProfileModel) -> UserProfile:
        return UserProfile(
            uid=model.uid,
            display_name=model.display_name,
            history=[CompletionEntry.model_validate(entry) for entry in model.history or []],
            current_streak=model.current_streak,
            max_streak=model.max_streak,
            badges=[BadgeAward.model_validate(badge) for badge in model.badges or []],
            total_score=model.total_score,
            quizzes_taken=model.quizzes_taken,
            total_questions_answered=model.total_questions_answered,
            shares=model.shares,
            friends=list(model.friends or []),
            created_at=model.created_at,
            last_updated=model.last_updated,
        )


user_profiles = UserProfileRepository()

__all__ = ["UserProfileRepository", "user_profiles"]
