"""
Server module for GroupChat.

Architecture Overview:
---------------------

1. **Authentication** (`auth/`)
   - GroupAuthenticator: checks (group name, password) against the store
   - hash_password / verify_password: bcrypt primitive

2. **Sessions** (`session/`)
   - GroupSession: connection -> (username, group) binding
   - SessionRegistry: the connection registry used by every handler

3. **Transport Layer** (`transport/`)
   - WebSocketConnection: connection wrapper
   - WebSocketConnectionRegistry: live transports by connection id

4. **Rooms** (`routing/`)
   - RoomCoordinator: membership and per-room serialized fan-out

5. **Storage** (`storage_sqlite.py`)
   - SQLiteStore: groups, message log and session mirror

6. **Protocol** (`websocket_manager.py`)
   - GroupChatManager: join / send / typing / leave state machine and the
     websocket server

Usage:

    from GroupChat.core.server import GroupChatManager, SQLiteStore

    manager = GroupChatManager(SQLiteStore("groupchat.db"))
    async with manager.run("localhost", 8765):
        await asyncio.Future()
"""

from GroupChat.core.server.auth import (
    INVALID_CREDENTIALS,
    GroupAuthenticator,
    hash_password,
    verify_password,
    verify_admin_password,
)
from GroupChat.core.server.exceptions import (
    GroupChatError,
    ValidationError,
    AuthError,
    NotFoundError,
    PersistenceError,
    ConflictError,
)
from GroupChat.core.server.interfaces import (
    AuthResult,
    TransportConnection,
    GroupStore,
    MessageLog,
    GroupChatStore,
    SessionMirror,
)
from GroupChat.core.server.routing import (
    RoomCoordinator,
    RoomHandle,
    DeliveryResult,
    DeliveryStatus,
)
from GroupChat.core.server.session import (
    SessionState,
    GroupSession,
    SessionRegistry,
)
from GroupChat.core.server.storage_sqlite import (
    SQLiteStore,
    GroupRow,
    MessageRow,
    GroupSummary,
)
from GroupChat.core.server.transport import (
    WebSocketConnection,
    WebSocketConnectionRegistry,
    close_in_background,
)
from GroupChat.core.server.websocket_manager import (
    GroupChatManager,
    ConnectionContext,
)

__all__ = [
    'INVALID_CREDENTIALS',
    'GroupAuthenticator',
    'hash_password',
    'verify_password',
    'verify_admin_password',

    'GroupChatError',
    'ValidationError',
    'AuthError',
    'NotFoundError',
    'PersistenceError',
    'ConflictError',

    'AuthResult',
    'TransportConnection',
    'GroupStore',
    'MessageLog',
    'GroupChatStore',
    'SessionMirror',

    'RoomCoordinator',
    'RoomHandle',
    'DeliveryResult',
    'DeliveryStatus',

    'SessionState',
    'GroupSession',
    'SessionRegistry',

    'SQLiteStore',
    'GroupRow',
    'MessageRow',
    'GroupSummary',

    'WebSocketConnection',
    'WebSocketConnectionRegistry',
    'close_in_background',

    'GroupChatManager',
    'ConnectionContext',
]
