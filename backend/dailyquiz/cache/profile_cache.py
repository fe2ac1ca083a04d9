"""Session-local profile state.

For an active session this cache, not the durable store, is the source of
truth: completions land here first and background syncs converge the durable
copy toward it.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional

from ..quiz_profile import PendingCompletion, UserProfile


class SessionProfileCache:
    def __init__(self) -> None:
        self._profiles: Dict[str, UserProfile] = {}
        self._pending: Dict[str, PendingCompletion] = {}
        self._lock = threading.Lock()

    def get_profile(self, uid: str) -> Optional[UserProfile]:
        with self._lock:
            profile = self._profiles.get(uid)
            return profile.model_copy(deep=True) if profile else None

    def set_profile(self, profile: UserProfile) -> None:
        with self._lock:
            self._profiles[profile.uid] = profile.model_copy(deep=True)

    def update_friends(self, uid: str, friends: List[str]) -> bool:
        """Replace the friend list of a cached profile; other fields are untouched."""
        with self._lock:
            profile = self._profiles.get(uid)
            if profile is None:
                return False
            profile.friends = list(friends)
            return True

    def get_pending(self, key: str) -> Optional[PendingCompletion]:
        with self._lock:
            pending = self._pending.get(key)
            return pending.model_copy(deep=True) if pending else None

    def set_pending(self, pending: PendingCompletion) -> None:
        with self._lock:
            self._pending[pending.guest_id] = pending.model_copy(deep=True)

    def pop_pending(self, key: str) -> Optional[PendingCompletion]:
        with self._lock:
            return self._pending.pop(key, None)

    def discard(self, key: str) -> bool:
        with self._lock:
            removed_profile = self._profiles.pop(key, None) is not None
            removed_pending = self._pending.pop(key, None) is not None
            return removed_profile or removed_pending

    def clear(self) -> None:
        with self._lock:
            self._profiles.clear()
            self._pending.clear()


__all__ = ["SessionProfileCache"]
