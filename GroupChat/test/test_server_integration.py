"""
End-to-end tests over a real websocket server.

Run with: python -m pytest GroupChat/test/test_server_integration.py -v
"""

import asyncio
import json

import pytest
import pytest_asyncio
from websockets.asyncio.client import connect

from GroupChat.core.server.websocket_manager import GroupChatManager
from GroupChat.test.conftest import join_frame, message_frame

TIMEOUT = 5.0


@pytest_asyncio.fixture
async def server_instance(store, make_group):
    """Run the chat server on a free local port."""
    make_group("team")
    manager = GroupChatManager(store, session_mirror=store)
    async with manager.run("127.0.0.1", 0):
        yield manager


async def receive(ws):
    return json.loads(await asyncio.wait_for(ws.recv(), TIMEOUT))


async def receive_until(ws, event):
    while True:
        frame = await receive(ws)
        if frame["event"] == event:
            return frame


class TestServerRoundTrip:
    """Join, chat and disconnect over real sockets."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_server_is_running(self, server_instance):
        assert server_instance.is_running is True
        assert server_instance.port

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_join_and_chat(self, server_instance):
        url = f"ws://127.0.0.1:{server_instance.port}"

        async with connect(url) as alice, connect(url) as bob:
            await alice.send(join_frame("team", "alice"))
            assert (await receive(alice))["event"] == "join-success"
            assert (await receive(alice))["data"] == []

            await bob.send(join_frame("team", "bob"))
            await receive_until(bob, "chat-history")
            joined = await receive_until(alice, "user-joined")
            assert joined["data"]["username"] == "bob"

            await alice.send(message_frame("hello over the wire"))
            for ws in (alice, bob):
                message = await receive_until(ws, "new-message")
                assert message["data"]["message"] == "hello over the wire"
                assert message["data"]["username"] == "alice"

            await bob.close()
            left = await receive_until(alice, "user-left")
            assert left["data"]["username"] == "bob"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_bad_credentials_keep_socket_open(self, server_instance):
        url = f"ws://127.0.0.1:{server_instance.port}"

        async with connect(url) as ws:
            await ws.send(join_frame("team", "alice", password="wrong"))
            assert (await receive(ws))["event"] == "join-error"

            await ws.send(join_frame("team", "alice"))
            assert (await receive(ws))["event"] == "join-success"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_server_stop_clears_connections(self, store, make_group):
        make_group("team")
        manager = GroupChatManager(store)
        await manager.start("127.0.0.1", 0)
        url = f"ws://127.0.0.1:{manager.port}"

        ws = await connect(url)
        await ws.send(join_frame("team", "alice"))
        await receive_until(ws, "chat-history")

        await manager.stop()
        await asyncio.wait_for(ws.wait_closed(), TIMEOUT)

        assert manager.is_running is False
        assert manager.active_session_count() == 0
