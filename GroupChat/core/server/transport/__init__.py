"""
Transport layer abstraction for WebSocket connections.

Wraps the raw websockets connection so the rest of the server sees one
small interface: a connection id, ``send`` that reports failure instead of
raising, ``close`` and ``is_open``.
"""

import asyncio
import logging
import uuid
from typing import Dict, Optional, Set

from websockets.asyncio.server import ServerConnection
from websockets.protocol import State

from GroupChat.core.server.interfaces import TransportConnection

logger = logging.getLogger(__name__)


class WebSocketConnection:
    """
    Wrapper around ServerConnection that implements TransportConnection.
    """

    def __init__(self, websocket: ServerConnection, conn_id: Optional[str] = None):
        """
        Initialize WebSocket connection wrapper.

        Args:
            websocket: Underlying websockets connection
            conn_id: Connection identifier (random when omitted)
        """
        self._websocket = websocket
        self._closed = False
        self.conn_id: str = conn_id or uuid.uuid4().hex

    @property
    def remote_address(self) -> Optional[str]:
        address = getattr(self._websocket, "remote_address", None)
        if not address:
            return None
        return f"{address[0]}:{address[1]}"

    async def send(self, message: str) -> bool:
        """
        Send a message through the connection.

        Args:
            message: Serialized frame

        Returns:
            True if message was sent successfully
        """
        if self._closed:
            return False

        try:
            await self._websocket.send(message)
            return True
        except Exception as e:
            logger.debug("Failed to send to %s: %s", self.conn_id, e)
            return False

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """
        Close the connection.

        Args:
            code: Close code
            reason: Close reason
        """
        if not self._closed:
            self._closed = True
            try:
                await self._websocket.close(code=code, reason=reason)
            except Exception as e:
                logger.debug("Error closing connection %s: %s", self.conn_id, e)

    def is_open(self) -> bool:
        """Check if connection is open."""
        if self._closed:
            return False
        return self._websocket.state is State.OPEN


_closing: Set[asyncio.Task] = set()


def close_in_background(connection: TransportConnection, code: int = 1011, reason: str = "Send timed out") -> None:
    """
    Close a connection without waiting for it.

    Used for peers that stopped reading; the caller may be holding a room lock.
    """
    task = asyncio.get_running_loop().create_task(connection.close(code, reason))
    _closing.add(task)
    task.add_done_callback(_closing.discard)


class WebSocketConnectionRegistry:
    """
    Registry of live transport connections keyed by connection id.

    Entries live from socket open to socket close, independent of whether
    the connection ever joins a group.
    """

    def __init__(self):
        self._connections: Dict[str, TransportConnection] = {}

    def register(self, connection: TransportConnection) -> None:
        self._connections[connection.conn_id] = connection
        logger.debug("Registered connection %s", connection.conn_id)

    def unregister(self, conn_id: str) -> Optional[TransportConnection]:
        connection = self._connections.pop(conn_id, None)
        if connection is not None:
            logger.debug("Unregistered connection %s", conn_id)
        return connection

    def get(self, conn_id: str) -> Optional[TransportConnection]:
        return self._connections.get(conn_id)

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, conn_id: str) -> bool:
        return conn_id in self._connections


__all__ = [
    'WebSocketConnection',
    'WebSocketConnectionRegistry',
    'close_in_background',
]
