from __future__ import annotations

import pytest

from dailyquiz.cache import SessionProfileCache
from dailyquiz.friends import FriendService, FriendshipError, LeaderboardRow, rank_rows
from dailyquiz.quiz_profile import CompletionEntry, ProfileNotFoundError, ProfileStoreError, UserProfile
from fakes import FakeProfileStore, no_sleep


def _profile(uid: str, name: str, *, friends=(), score=None, day="2026-02-10") -> UserProfile:
    history = [CompletionEntry(date=day, score=score, total_questions=4)] if score is not None else []
    return UserProfile(uid=uid, display_name=name, friends=list(friends), history=history)


@pytest.fixture
def store() -> FakeProfileStore:
    return FakeProfileStore()


def _service(store: FakeProfileStore, local: SessionProfileCache | None = None) -> FriendService:
    return FriendService(store, local, sleep=no_sleep)


def test_add_friend_links_both_profiles(store) -> None:
    store.add(_profile("a", "Abigail"))
    store.add(_profile("b", "Boaz"))

    profile = _service(store).add_friend("a", "b")

    assert profile.friends == ["b"]
    assert store.storage["a"].friends == ["b"]
    assert store.storage["b"].friends == ["a"]


def test_add_friend_is_idempotent(store) -> None:
    store.add(_profile("a", "Abigail", friends=["b"]))
    store.add(_profile("b", "Boaz", friends=["a"]))

    _service(store).add_friend("a", "b")

    assert store.storage["a"].friends == ["b"]
    assert store.updates == []


def test_cannot_befriend_yourself_or_a_missing_profile(store) -> None:
    store.add(_profile("a", "Abigail"))
    service = _service(store)
    with pytest.raises(FriendshipError):
        service.add_friend("a", "a")
    with pytest.raises(ProfileNotFoundError):
        service.add_friend("a", "zz")


def test_half_applied_link_is_reported(store, telemetry_events) -> None:
    store.add(_profile("a", "Abigail"))
    store.add(_profile("b", "Boaz"))
    service = _service(store)
    # reads of b succeed, writes to b fail
    original_update = store.update_fields

    def update_fields(uid, fields):
        if uid == "b":
            raise ProfileStoreError("write rejected")
        return original_update(uid, fields)

    store.update_fields = update_fields  # type: ignore[method-assign]

    profile = service.add_friend("a", "b")

    assert profile.friends == ["b"]
    assert store.storage["b"].friends == []
    partial = [event for event in telemetry_events if event.name == "friend_link_partial"]
    assert partial[0].payload["action"] == "add"


def test_remove_friend_unlinks_both_sides(store) -> None:
    store.add(_profile("a", "Abigail", friends=["b", "c"]))
    store.add(_profile("b", "Boaz", friends=["a"]))

    profile = _service(store).remove_friend("a", "b")

    assert profile.friends == ["c"]
    assert store.storage["b"].friends == []


def test_listing_friends_prunes_deleted_profiles(store) -> None:
    store.add(_profile("a", "Abigail", friends=["b", "gone"]))
    store.add(_profile("b", "Boaz"))

    friends = _service(store).list_friends("a")

    assert [friend.uid for friend in friends] == ["b"]
    assert store.storage["a"].friends == ["b"]


def test_unreachable_friends_are_skipped_but_kept(store) -> None:
    store.add(_profile("a", "Abigail", friends=["b", "c"]))
    store.add(_profile("b", "Boaz"))
    store.add(_profile("c", "Caleb"))
    store.failing_uids.add("c")

    friends = _service(store).list_friends("a")

    assert [friend.uid for friend in friends] == ["b"]
    assert store.storage["a"].friends == ["b", "c"]


def test_pruning_updates_the_session_copy(store) -> None:
    local = SessionProfileCache()
    me = _profile("a", "Abigail", friends=["gone"])
    store.add(me)
    local.set_profile(me)

    _service(store, local).list_friends("a")

    assert local.get_profile("a").friends == []


def test_leaderboard_orders_scored_rows_then_names(store) -> None:
    store.add(_profile("me", "Miriam", friends=["b", "c", "d", "e"], score=2))
    store.add(_profile("b", "Boaz", score=4))
    store.add(_profile("c", "caleb"))
    store.add(_profile("d", "Deborah", score=3))
    store.add(_profile("e", "Abel"))

    rows = _service(store).leaderboard("me", "2026-02-10")

    assert [(row.uid, row.rank) for row in rows] == [
        ("b", 1),
        ("d", 2),
        ("me", 3),
        ("e", None),
        ("c", None),
    ]
    assert next(row for row in rows if row.uid == "me").is_self is True


def test_leaderboard_prefers_the_session_copy_of_the_caller(store) -> None:
    store.add(_profile("me", "Miriam"))
    local = SessionProfileCache()
    local.set_profile(_profile("me", "Miriam", score=4))

    rows = _service(store, local).leaderboard("me", "2026-02-10")

    assert rows == [LeaderboardRow(uid="me", display_name="Miriam", score=4, total_questions=4, is_self=True, rank=1)]


def test_rank_rows_never_shares_places() -> None:
    rows = rank_rows(
        [
            LeaderboardRow(uid="x", display_name="Xena", score=3),
            LeaderboardRow(uid="y", display_name="Yael", score=3),
        ]
    )
    assert [row.rank for row in rows] == [1, 2]
