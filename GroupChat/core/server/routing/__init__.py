"""
Room membership and broadcasting.

The RoomCoordinator is the single serialization point for everything a
room observes: membership changes and fan-outs to one room run under that
room's lock, so every member sees the room's events in the same order.
Different rooms never wait on each other.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum, auto
from typing import AsyncIterator, Dict, Iterable, List, Optional

from GroupChat.config import config
from GroupChat.core.message.protocol import Event
from GroupChat.core.server.transport import WebSocketConnectionRegistry, close_in_background

logger = logging.getLogger(__name__)


class DeliveryStatus(Enum):
    """Status of a single delivery."""
    DELIVERED = auto()
    FAILED = auto()
    NOT_CONNECTED = auto()


@dataclass
class DeliveryResult:
    """Result of delivering one event to one connection."""
    status: DeliveryStatus
    conn_id: str
    error: Optional[str] = None


class RoomCoordinator:
    """
    Maintains room name -> member connection ids and fans events out.

    A connection belongs to at most one room at a time. Delivery is
    fire-and-forget per member: a failing member never aborts the fan-out
    and never fails the caller. A member that does not take a frame within
    ``send_timeout`` seconds is marked FAILED and closed, so a stalled
    reader cannot hold the room lock.
    """

    def __init__(self, connection_registry: WebSocketConnectionRegistry, send_timeout: Optional[float] = None):
        """
        Initialize the coordinator.

        Args:
            connection_registry: Live transports, used to resolve member ids
            send_timeout: Per-member delivery limit in seconds (config.SEND_TIMEOUT)
        """
        self._registry = connection_registry
        self._send_timeout = config.SEND_TIMEOUT if send_timeout is None else send_timeout
        # room -> ordered member ids (dict keeps join order)
        self._rooms: Dict[str, Dict[str, None]] = {}
        self._room_of: Dict[str, str] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    # ------------------------- membership -------------------------
    def join(self, room: str, conn_id: str) -> None:
        """
        Add a connection to a room; a no-op if it is already a member.

        Raises:
            ValueError: The connection is a member of a different room
        """
        current = self._room_of.get(conn_id)
        if current is not None and current != room:
            raise ValueError(f"Connection {conn_id} is already in room {current!r}")
        self._rooms.setdefault(room, {})[conn_id] = None
        self._room_of[conn_id] = room
        logger.debug("Connection %s joined room %s", conn_id, room)

    def leave(self, room: str, conn_id: str) -> bool:
        """
        Remove a connection from a room.

        Returns:
            True if the connection was a member
        """
        members = self._rooms.get(room)
        if members is None or conn_id not in members:
            return False
        del members[conn_id]
        self._room_of.pop(conn_id, None)
        if not members:
            del self._rooms[room]
        logger.debug("Connection %s left room %s", conn_id, room)
        return True

    def members(self, room: str) -> List[str]:
        return list(self._rooms.get(room, ()))

    def is_member(self, room: str, conn_id: str) -> bool:
        return conn_id in self._rooms.get(room, ())

    def room_of(self, conn_id: str) -> Optional[str]:
        return self._room_of.get(conn_id)

    def room_sizes(self) -> Dict[str, int]:
        return {room: len(members) for room, members in self._rooms.items()}

    # ------------------------- broadcasting -------------------------
    def lock(self, room: str) -> asyncio.Lock:
        """The room's critical-section lock (created on first use)."""
        lock = self._locks.get(room)
        if lock is None:
            lock = self._locks[room] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def exclusive(self, room: str) -> AsyncIterator['RoomHandle']:
        """
        Hold the room's lock across several membership/broadcast steps.

        Example:
            async with coordinator.exclusive("team") as handle:
                handle.join(conn_id)
                await handle.broadcast(event, exclude=conn_id)
        """
        async with self.lock(room):
            yield RoomHandle(self, room)

    async def broadcast(
        self,
        room: str,
        event: Event,
        exclude: Optional[str] = None
    ) -> Dict[str, DeliveryResult]:
        """
        Deliver an event to every member of a room except ``exclude``.

        Args:
            room: Room name
            event: Event to deliver
            exclude: Connection id to skip (usually the originator)

        Returns:
            Delivery results keyed by connection id
        """
        async with self.lock(room):
            return await self._fan_out(room, event, exclude)

    async def broadcast_all(self, room: str, event: Event) -> Dict[str, DeliveryResult]:
        """Deliver an event to every member of a room."""
        return await self.broadcast(room, event, exclude=None)

    async def _fan_out(
        self,
        room: str,
        event: Event,
        exclude: Optional[str] = None
    ) -> Dict[str, DeliveryResult]:
        targets = [conn_id for conn_id in self.members(room) if conn_id != exclude]
        if not targets:
            return {}

        frame = event.serialize()
        results = await asyncio.gather(*(self._deliver(conn_id, frame) for conn_id in targets))

        failed = [r.conn_id for r in results if r.status is not DeliveryStatus.DELIVERED]
        if failed:
            logger.debug("Event %s to room %s not delivered to %s", event.type.value, room, failed)
        return {r.conn_id: r for r in results}

    async def _deliver(self, conn_id: str, frame: str) -> DeliveryResult:
        connection = self._registry.get(conn_id)
        if connection is None:
            return DeliveryResult(DeliveryStatus.NOT_CONNECTED, conn_id, error="No connection")
        try:
            if await asyncio.wait_for(connection.send(frame), self._send_timeout):
                return DeliveryResult(DeliveryStatus.DELIVERED, conn_id)
            return DeliveryResult(DeliveryStatus.FAILED, conn_id, error="Send failed")
        except asyncio.TimeoutError:
            logger.warning("Delivery to %s timed out; closing it", conn_id)
            close_in_background(connection)
            return DeliveryResult(DeliveryStatus.FAILED, conn_id, error="Send timed out")
        except Exception as e:
            logger.exception("Error sending to %s: %s", conn_id, e)
            return DeliveryResult(DeliveryStatus.FAILED, conn_id, error=str(e))


class RoomHandle:
    """
    Operations on one room while its lock is held.

    Only valid inside ``RoomCoordinator.exclusive``.
    """

    def __init__(self, coordinator: RoomCoordinator, room: str):
        self._coordinator = coordinator
        self.room = room

    def join(self, conn_id: str) -> None:
        self._coordinator.join(self.room, conn_id)

    def leave(self, conn_id: str) -> bool:
        return self._coordinator.leave(self.room, conn_id)

    def members(self) -> List[str]:
        return self._coordinator.members(self.room)

    async def broadcast(
        self,
        event: Event,
        exclude: Optional[str] = None
    ) -> Dict[str, DeliveryResult]:
        return await self._coordinator._fan_out(self.room, event, exclude)

    async def broadcast_all(self, event: Event) -> Dict[str, DeliveryResult]:
        return await self._coordinator._fan_out(self.room, event)

    async def send_to(self, conn_ids: Iterable[str], event: Event) -> Dict[str, DeliveryResult]:
        """Deliver to specific connections, in room order relative to broadcasts."""
        frame = event.serialize()
        results = await asyncio.gather(
            *(self._coordinator._deliver(conn_id, frame) for conn_id in conn_ids)
        )
        return {r.conn_id: r for r in results}


__all__ = [
    'RoomCoordinator',
    'RoomHandle',
    'DeliveryResult',
    'DeliveryStatus',
]
