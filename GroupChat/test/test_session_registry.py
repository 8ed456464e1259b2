"""
Unit tests for SessionRegistry.
"""

import pytest

from GroupChat.core.server.session import GroupSession, SessionRegistry


def make_session(conn_id="c1", username="alice", group_name="team", group_id=1):
    return GroupSession(conn_id=conn_id, username=username, group_id=group_id, group_name=group_name)


class TestSessionRegistry:
    """Tests for the connection -> session mapping."""

    def setup_method(self):
        """Set up test fixtures."""
        self.registry = SessionRegistry()

    def test_put_and_get(self):
        session = make_session()
        self.registry.put(session)

        assert self.registry.get("c1") is session
        assert "c1" in self.registry
        assert len(self.registry) == 1

    def test_put_duplicate_connection(self):
        self.registry.put(make_session())

        with pytest.raises(ValueError):
            self.registry.put(make_session(username="mallory"))

    def test_remove(self):
        session = make_session()
        self.registry.put(session)

        assert self.registry.remove("c1") is session
        assert self.registry.remove("c1") is None
        assert self.registry.get("c1") is None

    def test_in_group_and_usernames(self):
        self.registry.put(make_session("c1", "bob"))
        self.registry.put(make_session("c2", "alice"))
        self.registry.put(make_session("c3", "carol", group_name="other", group_id=2))

        assert {s.conn_id for s in self.registry.in_group("team")} == {"c1", "c2"}
        assert self.registry.usernames("team") == ["alice", "bob"]
        assert self.registry.usernames("nobody") == []

    def test_same_username_on_two_connections(self):
        self.registry.put(make_session("c1", "alice"))
        self.registry.put(make_session("c2", "alice"))

        assert self.registry.usernames("team") == ["alice", "alice"]

    def test_duration(self):
        session = make_session()

        assert session.duration >= 0
