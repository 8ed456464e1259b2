"""
Contracts between the chat core and its collaborators.

The core only talks to the transport, the credential store and the message
log through these protocols, so tests can substitute in-memory fakes and a
different durable store can be plugged in without touching the state
machine.
"""

from abc import abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from GroupChat.core.server.storage_sqlite import GroupRow, MessageRow


@dataclass
class AuthResult:
    """Result of a group join authentication attempt."""
    success: bool
    group_id: Optional[int] = None
    group_name: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None


@runtime_checkable
class TransportConnection(Protocol):
    """Protocol for transport layer connections."""

    conn_id: str

    @abstractmethod
    async def send(self, message: str) -> bool:
        """Send a serialized frame; returns False instead of raising."""
        ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the connection."""
        ...

    @abstractmethod
    def is_open(self) -> bool:
        """Check if connection is open."""
        ...


@runtime_checkable
class GroupStore(Protocol):
    """Read side of the credential store used for authentication."""

    @abstractmethod
    def get_group(self, name: str) -> Optional['GroupRow']:
        """Look up a group by its exact name."""
        ...


@runtime_checkable
class MessageLog(Protocol):
    """Append-only message log."""

    @abstractmethod
    def add_message(self, group_id: int, username: str, text: str) -> 'MessageRow':
        """
        Persist a message with a server-assigned timestamp.

        Raises:
            NotFoundError: The group is missing or inactive
            PersistenceError: The store failed
        """
        ...

    @abstractmethod
    def recent_messages(self, group_id: int, limit: int) -> List['MessageRow']:
        """Return up to ``limit`` newest messages in ascending time order."""
        ...


@runtime_checkable
class GroupChatStore(GroupStore, MessageLog, Protocol):
    """Credential store plus message log, as the chat core uses them."""


@runtime_checkable
class SessionMirror(Protocol):
    """Optional durable copy of live sessions. Failures are never fatal."""

    @abstractmethod
    def record_session(self, conn_id: str, username: str, group_id: int) -> None:
        ...

    @abstractmethod
    def remove_session(self, conn_id: str) -> None:
        ...


__all__ = [
    'AuthResult',
    'TransportConnection',
    'GroupStore',
    'MessageLog',
    'GroupChatStore',
    'SessionMirror',
]
