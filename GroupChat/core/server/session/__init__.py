"""
Session tracking for the server.

A session binds one live connection to one group under one username. The
transport only hands us a bare connection id per event, so every handler
recovers its context through the registry below.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Per-connection protocol state."""
    UNAUTHENTICATED = auto()
    JOINED = auto()
    CLOSED = auto()


@dataclass(frozen=True)
class GroupSession:
    """
    Authenticated binding of a connection to a room.

    Attributes:
        conn_id: Connection identifier
        username: Display name, fixed for the lifetime of the session
        group_id: Store id of the group
        group_name: Room name (the group name at join time)
        joined_at: Session creation timestamp
    """
    conn_id: str
    username: str
    group_id: int
    group_name: str
    joined_at: float = field(default_factory=time.time)

    @property
    def duration(self) -> float:
        """Get session duration in seconds."""
        return time.time() - self.joined_at


class SessionRegistry:
    """
    Connection id -> GroupSession mapping.

    Mutated only from the event loop thread, so plain dict operations are
    atomic with respect to other connection tasks.
    """

    def __init__(self):
        self._sessions: Dict[str, GroupSession] = {}

    def put(self, session: GroupSession) -> None:
        """
        Register a session.

        Raises:
            ValueError: The connection already has a session
        """
        if session.conn_id in self._sessions:
            raise ValueError(f"Connection {session.conn_id} already has a session")
        self._sessions[session.conn_id] = session
        logger.debug("Session added for %s in %s", session.username, session.group_name)

    def get(self, conn_id: str) -> Optional[GroupSession]:
        return self._sessions.get(conn_id)

    def remove(self, conn_id: str) -> Optional[GroupSession]:
        """Remove and return the session; None if there was none."""
        session = self._sessions.pop(conn_id, None)
        if session is not None:
            logger.debug("Session removed for %s in %s", session.username, session.group_name)
        return session

    def in_group(self, group_name: str) -> List[GroupSession]:
        """All sessions bound to the given room."""
        return [s for s in self._sessions.values() if s.group_name == group_name]

    def usernames(self, group_name: str) -> List[str]:
        return sorted(s.username for s in self.in_group(group_name))

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, conn_id: str) -> bool:
        return conn_id in self._sessions


__all__ = [
    'SessionState',
    'GroupSession',
    'SessionRegistry',
]
