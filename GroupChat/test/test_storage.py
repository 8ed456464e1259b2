"""
Tests for the SQLite store: groups, message log and session mirror.
"""

import pytest

from GroupChat.core.server.exceptions import ConflictError, NotFoundError, PersistenceError
from GroupChat.core.server.storage_sqlite import SQLiteStore


class TestGroups:
    """Group CRUD."""

    def test_create_and_get(self, store):
        group = store.create_group("team", "hash")

        fetched = store.get_group("team")
        assert fetched == group
        assert fetched.is_active is True
        assert store.get_group_by_id(group.id) == group

    def test_names_are_case_sensitive(self, store):
        store.create_group("team", "hash")

        assert store.get_group("Team") is None

    def test_duplicate_name(self, store):
        store.create_group("team", "hash")

        with pytest.raises(ConflictError, match="Group already exists"):
            store.create_group("team", "other")

    def test_rename(self, store):
        original = store.create_group("team", "hash")

        renamed = store.update_group("team", new_name="crew")

        assert renamed.id == original.id
        assert renamed.name == "crew"
        assert store.get_group("team") is None

    def test_rename_to_taken_name(self, store):
        store.create_group("team", "hash")
        store.create_group("crew", "hash")

        with pytest.raises(ConflictError, match="New group name already exists"):
            store.update_group("team", new_name="crew")

    def test_update_missing_group(self, store):
        with pytest.raises(NotFoundError, match="Group not found"):
            store.update_group("ghost", is_active=False)

    def test_update_password_and_flag(self, store):
        store.create_group("team", "hash")

        updated = store.update_group("team", password_hash="new-hash", is_active=False)

        assert updated.password_hash == "new-hash"
        assert updated.is_active is False

    def test_update_without_changes(self, store):
        group = store.create_group("team", "hash")

        assert store.update_group("team") == group

    def test_delete_cascades_messages(self, store):
        group = store.create_group("team", "hash")
        store.add_message(group.id, "alice", "hello")
        store.record_session("c1", "alice", group.id)

        store.delete_group("team")

        assert store.get_group("team") is None
        assert store.count_messages() == 0
        assert store.count_sessions() == 0

    def test_delete_missing_group(self, store):
        with pytest.raises(NotFoundError):
            store.delete_group("ghost")

    def test_list_groups_active_newest_first(self, store):
        first = store.create_group("first", "hash")
        store.create_group("second", "hash")
        store.create_group("hidden", "hash")
        store.update_group("hidden", is_active=False)
        store.add_message(first.id, "alice", "one")
        store.add_message(first.id, "alice", "two")

        groups = store.list_groups()

        assert [g.name for g in groups] == ["second", "first"]
        assert groups[1].message_count == 2
        assert groups[0].message_count == 0
        assert len(store.list_groups(active_only=False)) == 3

    def test_stats(self, store):
        team = store.create_group("team", "hash")
        store.create_group("crew", "hash")
        store.add_message(team.id, "alice", "hi")

        stats = store.stats(recent=1)

        assert stats["total_groups"] == 2
        assert stats["total_messages"] == 1
        assert [g["name"] for g in stats["recent_groups"]] == ["crew"]


class TestMessages:
    """Append-only message log."""

    def test_recent_messages_ascending_and_limited(self, store):
        group = store.create_group("team", "hash")
        for i in range(5):
            store.add_message(group.id, "alice", f"m{i}")

        recent = store.recent_messages(group.id, 3)

        assert [m.message for m in recent] == ["m2", "m3", "m4"]

    def test_timestamps_strictly_increase(self, store):
        group = store.create_group("team", "hash")
        rows = [store.add_message(group.id, "alice", f"m{i}") for i in range(10)]

        stamps = [r.timestamp for r in rows]
        assert all(a < b for a, b in zip(stamps, stamps[1:]))

    def test_messages_are_per_group(self, store):
        team = store.create_group("team", "hash")
        crew = store.create_group("crew", "hash")
        store.add_message(team.id, "alice", "for team")
        store.add_message(crew.id, "bob", "for crew")

        assert [m.message for m in store.recent_messages(team.id, 50)] == ["for team"]
        assert store.count_messages(crew.id) == 1

    def test_add_message_to_inactive_group(self, store):
        group = store.create_group("team", "hash")
        store.update_group("team", is_active=False)

        with pytest.raises(NotFoundError):
            store.add_message(group.id, "alice", "hello")
        assert store.count_messages() == 0

    def test_add_message_to_deleted_group(self, store):
        group = store.create_group("team", "hash")
        store.delete_group("team")

        with pytest.raises(NotFoundError):
            store.add_message(group.id, "alice", "hello")


class TestSessionMirror:
    """Durable copy of live sessions."""

    def test_record_and_remove(self, store):
        group = store.create_group("team", "hash")

        store.record_session("c1", "alice", group.id)
        store.record_session("c1", "alice", group.id)
        assert store.count_sessions() == 1

        store.remove_session("c1")
        assert store.count_sessions() == 0

    def test_clear_sessions(self, store):
        group = store.create_group("team", "hash")
        store.record_session("c1", "alice", group.id)
        store.record_session("c2", "bob", group.id)

        assert store.clear_sessions() == 2
        assert store.count_sessions() == 0


def test_unopenable_database(tmp_path):
    with pytest.raises(PersistenceError):
        SQLiteStore(str(tmp_path / "missing" / "groupchat.db"))


def test_data_survives_reopen(tmp_path):
    path = str(tmp_path / "groupchat.db")
    first = SQLiteStore(path)
    group = first.create_group("team", "hash")
    first.add_message(group.id, "alice", "persisted")
    first.close()

    second = SQLiteStore(path)
    try:
        assert [m.message for m in second.recent_messages(group.id, 50)] == ["persisted"]
    finally:
        second.close()
