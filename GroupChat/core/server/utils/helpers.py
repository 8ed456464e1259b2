"""
Builders for the events the server sends to clients.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Iterable, Optional

from GroupChat.config import config
from GroupChat.core.message.protocol import Event, EventType
from GroupChat.core.server.interfaces import TransportConnection
from GroupChat.core.server.storage_sqlite import MessageRow
from GroupChat.core.server.transport import close_in_background

logger = logging.getLogger(__name__)


def iso_timestamp(ts: Optional[float] = None) -> str:
    """UTC ISO 8601 string for an epoch timestamp (now when omitted)."""
    if ts is None:
        ts = time.time()
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def create_join_success(group_name: str, username: str, group_id: int) -> Event:
    return Event(EventType.JOIN_SUCCESS, {
        "groupName": group_name,
        "username": username,
        "groupId": group_id,
    })


def create_join_error(message: str) -> Event:
    return Event(EventType.JOIN_ERROR, message)


def create_chat_history(rows: Iterable[MessageRow]) -> Event:
    """History entries in the order given (ascending time)."""
    return Event(EventType.CHAT_HISTORY, [
        {
            "username": row.username,
            "message": row.message,
            "timestamp": iso_timestamp(row.timestamp),
        }
        for row in rows
    ])


def create_new_message(row: MessageRow) -> Event:
    return Event(EventType.NEW_MESSAGE, {
        "id": row.id,
        "username": row.username,
        "message": row.message,
        "timestamp": iso_timestamp(row.timestamp),
    })


def create_message_error(message: str) -> Event:
    return Event(EventType.MESSAGE_ERROR, message)


def create_typing_message(username: str, typing: bool = True) -> Event:
    event_type = EventType.USER_TYPING if typing else EventType.USER_STOP_TYPING
    return Event(event_type, {"username": username})


def create_join_message(username: str) -> Event:
    """
    Create a user joined notification.

    Args:
        username: Joining username

    Returns:
        Event instance
    """
    return Event(EventType.USER_JOINED, {
        "username": username,
        "message": f"{username} joined the chat",
        "timestamp": iso_timestamp(),
    })


def create_leave_message(username: str) -> Event:
    """
    Create a user left notification.

    Args:
        username: Leaving username

    Returns:
        Event instance
    """
    return Event(EventType.USER_LEFT, {
        "username": username,
        "message": f"{username} left the chat",
        "timestamp": iso_timestamp(),
    })


def create_group_removed(group_name: str, message: str) -> Event:
    return Event(EventType.GROUP_REMOVED, {"groupName": group_name, "message": message})


class SafeSender:
    """
    Utility for sending to a single connection without raising.
    """

    @staticmethod
    async def send(connection: TransportConnection, event: Event, timeout: Optional[float] = None) -> bool:
        """
        Safely send an event.

        Args:
            connection: Connection object with send method
            event: Event to send
            timeout: Seconds to wait (config.SEND_TIMEOUT); a connection
                that does not accept the frame in time is closed

        Returns:
            True if successful
        """
        timeout = config.SEND_TIMEOUT if timeout is None else timeout
        try:
            return await asyncio.wait_for(connection.send(event.serialize()), timeout)
        except asyncio.TimeoutError:
            logger.warning("Send of %s to %s timed out; closing it", event.type.value, connection.conn_id)
            close_in_background(connection)
            return False
        except Exception as e:
            logger.warning("Failed to send %s: %s", event.type.value, e)
            return False
