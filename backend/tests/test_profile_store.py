"""SQL-backed profile documents."""

from __future__ import annotations

import pytest

from dailyquiz.quiz_profile import (
    BadgeAward,
    CompletionEntry,
    ProfileNotFoundError,
    ProfileStore,
    UserProfile,
)


def test_create_is_idempotent(clean_database) -> None:
    store = ProfileStore()
    created = store.create(UserProfile(uid="u1", display_name="Ruth"))
    again = store.create(UserProfile(uid="u1", display_name="Someone Else", quizzes_taken=9))

    assert created.display_name == "Ruth"
    assert again.display_name == "Ruth"
    assert again.quizzes_taken == 0


def test_partial_update_keeps_other_fields(clean_database) -> None:
    store = ProfileStore()
    store.create(UserProfile(uid="u1", display_name="Ruth", friends=["u2"]))

    updated = store.update_fields(
        "u1",
        {
            "history": [CompletionEntry(date="2026-02-10", score=3, answers=[0, 1, 2, 3]).model_dump()],
            "badges": [BadgeAward(id="first-steps", unlocked_on="2026-02-10").model_dump()],
            "quizzes_taken": 1,
            "total_score": 3,
        },
    )

    assert updated.quizzes_taken == 1
    assert updated.friends == ["u2"]
    reloaded = store.get("u1")
    assert reloaded.history[0].answers == [0, 1, 2, 3]
    assert reloaded.badges[0].id == "first-steps"
    assert reloaded.display_name == "Ruth"


def test_sync_fields_round_trip_through_the_database(clean_database) -> None:
    store = ProfileStore()
    store.create(UserProfile(uid="u1"))
    local = UserProfile(
        uid="u1",
        history=[CompletionEntry(date="2026-02-10", score=4, timestamp="11:11", duration_seconds=12, shared=True)],
        current_streak=1,
        max_streak=4,
        total_score=4,
        quizzes_taken=1,
        total_questions_answered=4,
        shares=1,
    )

    store.update_fields("u1", local.sync_fields())

    stored = store.get("u1")
    assert stored.sync_fields() == local.sync_fields()


def test_update_rejects_unknown_fields_and_missing_profiles(clean_database) -> None:
    store = ProfileStore()
    store.create(UserProfile(uid="u1"))
    with pytest.raises(ValueError):
        store.update_fields("u1", {"uid": "u2"})
    with pytest.raises(ProfileNotFoundError):
        store.update_fields("nobody", {"shares": 1})


def test_friend_lists_are_deduplicated(clean_database) -> None:
    store = ProfileStore()
    store.create(UserProfile(uid="u1"))
    assert store.update_fields("u1", {"friends": ["b", "a", "b"]}).friends == ["b", "a"]


def test_get_and_delete(clean_database) -> None:
    store = ProfileStore()
    assert store.get("u1") is None
    store.create(UserProfile(uid="u1"))
    assert store.delete("u1") is True
    assert store.delete("u1") is False
    assert store.get("u1") is None
