"""
Event protocol used between GroupChat clients and the server.

Every frame on the wire is a JSON object::

    {"event": "send-message", "data": {"message": "hi"}}

``data`` is an object, a list, a string or null depending on the event.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any


class EventType(Enum):
    """
    Names of the real-time events.
    """
    # client -> server
    JOIN_GROUP = "join-group"
    LEAVE_GROUP = "leave-group"
    SEND_MESSAGE = "send-message"
    TYPING_START = "typing-start"
    TYPING_STOP = "typing-stop"

    # server -> client
    JOIN_SUCCESS = "join-success"
    JOIN_ERROR = "join-error"
    CHAT_HISTORY = "chat-history"
    NEW_MESSAGE = "new-message"
    MESSAGE_ERROR = "message-error"
    USER_TYPING = "user-typing"
    USER_STOP_TYPING = "user-stop-typing"
    USER_JOINED = "user-joined"
    USER_LEFT = "user-left"
    GROUP_REMOVED = "group-removed"


CLIENT_EVENTS = frozenset({
    EventType.JOIN_GROUP,
    EventType.LEAVE_GROUP,
    EventType.SEND_MESSAGE,
    EventType.TYPING_START,
    EventType.TYPING_STOP,
})


class ProtocolError(ValueError):
    """Raised for frames that cannot be decoded into an Event."""


@dataclass(frozen=True)
class Event:
    """
    One protocol frame.

    Attributes:
        type (EventType): Event name
        data: JSON-compatible payload
    """
    type: EventType
    data: Any = None

    def serialize(self) -> str:
        """
        Serialize the event to a JSON string.

        Returns:
            str: JSON representation of the frame
        """
        return json.dumps({"event": self.type.value, "data": self.data})

    @classmethod
    def deserialize(cls, raw: str) -> 'Event':
        """
        Create an Event from a JSON frame.

        Args:
            raw (str): JSON text received from the transport

        Returns:
            Event: Decoded event

        Raises:
            ProtocolError: If the frame is not JSON, not an object or names
                an unknown event
        """
        try:
            obj = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise ProtocolError(f"Invalid JSON frame: {e}") from e
        if not isinstance(obj, dict) or "event" not in obj:
            raise ProtocolError("Frame must be an object with an 'event' field")
        try:
            event_type = EventType(obj["event"])
        except ValueError as e:
            raise ProtocolError(f"Unknown event: {obj['event']!r}") from e
        return cls(type=event_type, data=obj.get("data"))


def payload_str(data: Any, key: str) -> str:
    """Read ``data[key]`` as a trimmed string; anything else reads as ''."""
    if not isinstance(data, dict):
        return ""
    value = data.get(key)
    if not isinstance(value, str):
        return ""
    return value.strip()
