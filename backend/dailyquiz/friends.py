"""Friend graph and the friends leaderboard."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, Iterable, List, Optional, Tuple

from .cache import SessionProfileCache
from .quiz_profile import (
    ProfileNotFoundError,
    ProfileStore,
    ProfileStoreError,
    UserProfile,
    normalize_uid,
)
from .retry import RetryExhaustedError, RetryPolicy
from .telemetry import emit_event

logger = logging.getLogger(__name__)


class FriendshipError(ValueError):
    pass


@dataclass(frozen=True)
class LeaderboardRow:
    uid: str
    display_name: str
    score: Optional[int] = None
    total_questions: Optional[int] = None
    current_streak: int = 0
    is_self: bool = False
    rank: Optional[int] = None


def rank_rows(rows: Iterable[LeaderboardRow]) -> List[LeaderboardRow]:
    """Scored rows first by score descending, then unscored rows by name.

    Only scored rows get a rank; ranks run 1, 2, 3... with no shared places.
    """
    rows = list(rows)
    scored = sorted(
        (row for row in rows if row.score is not None),
        key=lambda row: (-(row.score or 0), row.display_name.lower()),
    )
    unscored = sorted(
        (row for row in rows if row.score is None),
        key=lambda row: row.display_name.lower(),
    )
    ranked = [replace(row, rank=position) for position, row in enumerate(scored, start=1)]
    return ranked + unscored


def _row_for(profile: UserProfile, day: str, *, is_self: bool = False) -> LeaderboardRow:
    entry = profile.entry_for(day)
    return LeaderboardRow(
        uid=profile.uid,
        display_name=profile.display_name,
        score=entry.score if entry else None,
        total_questions=entry.total_questions if entry else None,
        current_streak=profile.current_streak,
        is_self=is_self,
    )


def _pair(uid: str, friend_uid: str) -> Tuple[str, str]:
    try:
        left, right = normalize_uid(uid), normalize_uid(friend_uid)
    except ValueError as exc:
        raise FriendshipError(str(exc)) from exc
    if left == right:
        raise FriendshipError("You cannot add yourself as a friend.")
    return left, right


class FriendService:
    """Two-sided friend links over the profile store.

    Each link touches two documents. When the second write fails the first is
    kept; a dangling reference is pruned the next time the list is read.
    """

    def __init__(
        self,
        store: ProfileStore,
        local: Optional[SessionProfileCache] = None,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self._store = store
        self._local = local
        self._retry = retry_policy or RetryPolicy(retry_on=(ProfileStoreError,))
        self._sleep = sleep

    def add_friend(self, uid: str, friend_uid: str) -> UserProfile:
        uid, friend_uid = _pair(uid, friend_uid)
        profile = self._require(uid)
        friend = self._require(friend_uid)
        if friend_uid not in profile.friends:
            profile = self._set_friends(uid, [*profile.friends, friend_uid])
        if uid not in friend.friends:
            self._link_back(friend_uid, [*friend.friends, uid], uid, action="add")
        logger.info("Linked friends %s and %s", uid, friend_uid)
        return profile

    def remove_friend(self, uid: str, friend_uid: str) -> UserProfile:
        uid, friend_uid = _pair(uid, friend_uid)
        profile = self._require(uid)
        if friend_uid in profile.friends:
            profile = self._set_friends(uid, [item for item in profile.friends if item != friend_uid])
        friend = self._get(friend_uid)
        if friend is not None and uid in friend.friends:
            self._link_back(friend_uid, [item for item in friend.friends if item != uid], uid, action="remove")
        return profile

    def list_friends(self, uid: str) -> List[UserProfile]:
        """Friend profiles of ``uid``, pruning references to deleted profiles."""
        profile = self._require(normalize_uid(uid))
        friends: List[UserProfile] = []
        missing: List[str] = []
        for friend_uid in profile.friends:
            try:
                friend = self._get(friend_uid)
            except RetryExhaustedError as exc:
                # unreachable is not the same as missing; keep the reference
                logger.warning("Skipping friend %s of %s: %s", friend_uid, profile.uid, exc)
                continue
            if friend is None:
                missing.append(friend_uid)
            else:
                friends.append(friend)

        if missing:
            remaining = [item for item in profile.friends if item not in missing]
            try:
                self._set_friends(profile.uid, remaining)
            except (RetryExhaustedError, ProfileNotFoundError) as exc:
                logger.warning("Could not prune friends of %s: %s", profile.uid, exc)
            else:
                logger.info("Pruned %s missing friend(s) from %s", len(missing), profile.uid)
        return friends

    def leaderboard(self, uid: str, day: str) -> List[LeaderboardRow]:
        uid = normalize_uid(uid)
        me = self._local.get_profile(uid) if self._local else None
        if me is None:
            me = self._require(uid)
        rows = [_row_for(me, day, is_self=True)]
        rows.extend(_row_for(friend, day) for friend in self.list_friends(uid))
        return rank_rows(rows)

    def _get(self, uid: str) -> Optional[UserProfile]:
        return self._retry.call(lambda: self._store.get(uid), name=f"profile_read:{uid}", sleep=self._sleep)

    def _require(self, uid: str) -> UserProfile:
        profile = self._get(uid)
        if profile is None:
            raise ProfileNotFoundError(f"Profile '{uid}' was not found.")
        return profile

    def _set_friends(self, uid: str, friends: List[str]) -> UserProfile:
        updated = self._retry.call(
            lambda: self._store.update_fields(uid, {"friends": friends}),
            name=f"friends_update:{uid}",
            sleep=self._sleep,
        )
        if self._local is not None:
            self._local.update_friends(uid, updated.friends)
        return updated

    def _link_back(self, owner: str, friends: List[str], other: str, *, action: str) -> None:
        try:
            self._set_friends(owner, friends)
        except (RetryExhaustedError, ProfileNotFoundError) as exc:
            logger.warning("Friend %s for %s only half applied: %s", action, owner, exc)
            emit_event("friend_link_partial", uid=other, friend_uid=owner, action=action, error=exc)


__all__ = ["FriendService", "FriendshipError", "LeaderboardRow", "rank_rows"]
