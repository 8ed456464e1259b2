"""
Test configuration and fixtures for GroupChat server tests.

Provides:
- A throwaway SQLite store per test
- In-memory transport connections that record every frame sent to them
- A chat manager wired to the store
- Helpers to create groups and join them
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest

from GroupChat.config import config
from GroupChat.core.logging import configure_logging, create_testing_config
from GroupChat.core.message.protocol import Event, EventType
from GroupChat.core.server.auth import hash_password
from GroupChat.core.server.storage_sqlite import GroupRow, SQLiteStore
from GroupChat.core.server.websocket_manager import ConnectionContext, GroupChatManager

TEST_ROUNDS = 4
GROUP_PASSWORD = "secret-pass"


class FakeConnection:
    """TransportConnection that keeps the frames it was sent."""

    def __init__(self, conn_id: str):
        self.conn_id = conn_id
        self.sent: List[str] = []
        self.open = True
        self.fail_sends = False
        self.stalled = False
        self.close_code: Optional[int] = None

    async def send(self, message: str) -> bool:
        if not self.open or self.fail_sends:
            return False
        if self.stalled:
            # A peer that stopped reading: the write never completes.
            await asyncio.Event().wait()
        self.sent.append(message)
        return True

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.open = False
        self.close_code = code

    def is_open(self) -> bool:
        return self.open

    def frames(self) -> List[Dict[str, Any]]:
        return [json.loads(raw) for raw in self.sent]

    def events(self, name: Optional[str] = None) -> List[Dict[str, Any]]:
        """Decoded frames, optionally only those of one event."""
        frames = self.frames()
        if name is None:
            return frames
        return [f for f in frames if f["event"] == name]

    def names(self) -> List[str]:
        return [f["event"] for f in self.frames()]

    def clear(self) -> None:
        self.sent.clear()


def frame(event_type: EventType, data: Any = None) -> str:
    return Event(event_type, data).serialize()


def join_frame(group_name: str, username: str, password: str = GROUP_PASSWORD) -> str:
    return frame(EventType.JOIN_GROUP, {
        "groupName": group_name,
        "password": password,
        "username": username,
    })


def message_frame(text: str) -> str:
    return frame(EventType.SEND_MESSAGE, {"message": text})


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    """Keep bcrypt cheap in tests."""
    monkeypatch.setattr(config, "BCRYPT_ROUNDS", TEST_ROUNDS)


@pytest.fixture(scope="session", autouse=True)
def test_logging():
    configure_logging(create_testing_config())


@pytest.fixture
def store(tmp_path) -> SQLiteStore:
    db = SQLiteStore(str(tmp_path / "groupchat-test.db"))
    yield db
    db.close()


@pytest.fixture
def make_group(store):
    """Create a group with a known password."""
    def _make(name: str, password: str = GROUP_PASSWORD) -> GroupRow:
        return store.create_group(name, hash_password(password, rounds=TEST_ROUNDS))
    return _make


@pytest.fixture
def manager(store) -> GroupChatManager:
    return GroupChatManager(store, session_mirror=store)


@pytest.fixture
def connect(manager):
    """Open an in-memory connection on the manager."""
    def _connect(conn_id: str) -> ConnectionContext:
        return manager.open_connection(FakeConnection(conn_id))
    return _connect


@pytest.fixture
def joined(manager, store, connect, make_group):
    """Join a fresh connection to a group, creating the group if needed."""
    async def _joined(conn_id: str, username: str, group_name: str = "team") -> ConnectionContext:
        if store.get_group(group_name) is None:
            make_group(group_name)
        context = connect(conn_id)
        await manager.handle_frame(context, join_frame(group_name, username))
        return context
    return _joined


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
