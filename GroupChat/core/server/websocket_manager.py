"""
WebSocket manager that runs the group chat protocol.

Each connection moves through a small state machine::

    UNAUTHENTICATED --join-group--> JOINED --leave-group / eviction--> UNAUTHENTICATED
           |                           |
           +--------- disconnect ------+--> CLOSED

Inbound frames of one connection are handled one at a time by that
connection's task. Everything a room observes (membership changes, the
join handshake, message persistence and fan-out) happens while holding the
room's lock in the RoomCoordinator, so all members see one order of events.

Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                     GroupChatManager                     │
    │  ┌──────────────┐  ┌────────────────┐  ┌──────────────┐  │
    │  │ Group        │  │ Session        │  │ Room         │  │
    │  │ Authenticator│  │ Registry       │  │ Coordinator  │  │
    │  └──────────────┘  └────────────────┘  └──────────────┘  │
    │  ┌──────────────┐  ┌────────────────┐                    │
    │  │ Connection   │  │ Message log /  │                    │
    │  │ Registry     │  │ group store    │                    │
    │  └──────────────┘  └────────────────┘                    │
    └──────────────────────────────────────────────────────────┘
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, List, Optional

import websockets
from websockets.asyncio.server import Server, ServerConnection, serve

from GroupChat.config import config
from GroupChat.core.message.protocol import Event, EventType, ProtocolError
from GroupChat.core.server.auth import INVALID_CREDENTIALS, GroupAuthenticator
from GroupChat.core.server.exceptions import (
    AuthError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from GroupChat.core.server.interfaces import (
    GroupChatStore,
    SessionMirror,
    TransportConnection,
)
from GroupChat.core.server.routing import RoomCoordinator, RoomHandle
from GroupChat.core.server.session import GroupSession, SessionRegistry, SessionState
from GroupChat.core.server.transport import WebSocketConnection, WebSocketConnectionRegistry
from GroupChat.core.server.utils.helpers import (
    SafeSender,
    create_chat_history,
    create_group_removed,
    create_join_error,
    create_join_message,
    create_join_success,
    create_leave_message,
    create_message_error,
    create_new_message,
    create_typing_message,
)
from GroupChat.core.server.utils.validation import clean_message_text, parse_join_request

logger = logging.getLogger(__name__)

ALREADY_JOINED = "Already joined a group"
JOIN_IN_PROGRESS = "Join already in progress"
JOIN_UNAVAILABLE = "Unable to join group right now"
SEND_FAILED = "Failed to send message"
GROUP_REMOVED = "This group is no longer available"


class ConnectionContext:
    """
    Protocol state of a single connection.

    Attributes:
        connection: Transport connection
        state: Current SessionState
        session: The GroupSession while JOINED, else None
    """

    def __init__(self, connection: TransportConnection, send_timeout: Optional[float] = None):
        self.connection = connection
        self.send_timeout = send_timeout
        self.state = SessionState.UNAUTHENTICATED
        self.session: Optional[GroupSession] = None
        self.joining = False

    @property
    def conn_id(self) -> str:
        return self.connection.conn_id

    async def send(self, event: Event) -> bool:
        """Send an event to this connection only."""
        return await SafeSender.send(self.connection, event, self.send_timeout)


class GroupChatManager:
    """
    Runs the join / chat / typing / leave protocol for every connection.

    Example:
        manager = GroupChatManager(SQLiteStore("groupchat.db"))

        async with manager.run("localhost", 8765):
            await asyncio.Future()
    """

    def __init__(
        self,
        store: GroupChatStore,
        authenticator: Optional[GroupAuthenticator] = None,
        session_mirror: Optional[SessionMirror] = None,
        history_limit: Optional[int] = None,
        max_message_length: Optional[int] = None,
        max_username_length: Optional[int] = None,
        send_timeout: Optional[float] = None,
    ):
        """
        Initialize the manager.

        Args:
            store: Credential store and message log
            authenticator: Join authenticator (built on ``store`` if None)
            session_mirror: Optional durable copy of live sessions
            history_limit: Messages delivered on join (config.HISTORY_LIMIT)
            max_message_length: Longest accepted message (config.MAX_MESSAGE_LENGTH)
            max_username_length: Longest accepted username (config.MAX_USERNAME_LENGTH)
            send_timeout: Seconds a single delivery may take before the
                receiving connection is dropped (config.SEND_TIMEOUT)
        """
        self._store = store
        self._authenticator = authenticator or GroupAuthenticator(store)
        self._session_mirror = session_mirror
        self._history_limit = config.HISTORY_LIMIT if history_limit is None else history_limit
        self._max_message_length = (
            config.MAX_MESSAGE_LENGTH if max_message_length is None else max_message_length
        )
        self._max_username_length = (
            config.MAX_USERNAME_LENGTH if max_username_length is None else max_username_length
        )
        self._send_timeout = config.SEND_TIMEOUT if send_timeout is None else send_timeout

        self._sessions = SessionRegistry()
        self._connection_registry = WebSocketConnectionRegistry()
        self._rooms = RoomCoordinator(self._connection_registry, send_timeout=self._send_timeout)
        self._contexts: Dict[str, ConnectionContext] = {}

        self._handlers: Dict[EventType, Callable[[ConnectionContext, Any], Awaitable[None]]] = {
            EventType.JOIN_GROUP: self.handle_join,
            EventType.LEAVE_GROUP: self.handle_leave,
            EventType.SEND_MESSAGE: self.handle_send_message,
            EventType.TYPING_START: self.handle_typing_start,
            EventType.TYPING_STOP: self.handle_typing_stop,
        }

        self._server: Optional[Server] = None
        self._running = False

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def sessions(self) -> SessionRegistry:
        return self._sessions

    @property
    def rooms(self) -> RoomCoordinator:
        return self._rooms

    @property
    def connection_registry(self) -> WebSocketConnectionRegistry:
        return self._connection_registry

    @property
    def is_running(self) -> bool:
        """Check if server is running."""
        return self._running

    @property
    def port(self) -> Optional[int]:
        """Bound port (useful when started on port 0)."""
        if self._server is None:
            return None
        for sock in self._server.sockets:
            return sock.getsockname()[1]
        return None

    def get_context(self, conn_id: str) -> Optional[ConnectionContext]:
        return self._contexts.get(conn_id)

    def active_session_count(self) -> int:
        return len(self._sessions)

    def room_usernames(self, group_name: str) -> List[str]:
        return self._sessions.usernames(group_name)

    # ------------------------------------------------------------------
    # Server lifecycle
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def run(self, host: str = "localhost", port: int = 8765):
        """
        Run the WebSocket server as an async context manager.

        Args:
            host: Host to bind to
            port: Port to listen on

        Yields:
            The manager instance
        """
        await self.start(host, port)
        try:
            yield self
        finally:
            await self.stop()

    async def start(self, host: str = "localhost", port: int = 8765) -> None:
        """
        Start the WebSocket server.

        Args:
            host: Host to bind to
            port: Port to listen on (0 picks a free port)
        """
        self._server = await serve(self._handle_connection, host, port)
        self._running = True
        logger.info("WebSocket server started on ws://%s:%s", host, self.port)

    async def stop(self) -> None:
        """Stop the WebSocket server and close every connection."""
        self._running = False

        for context in list(self._contexts.values()):
            await context.connection.close(1001, "Server shutting down")

        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        logger.info("WebSocket server stopped")

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        """Serve one websocket for its whole lifetime."""
        connection = WebSocketConnection(websocket)
        context = self.open_connection(connection)
        logger.info("Connection %s opened from %s", context.conn_id, connection.remote_address)

        try:
            async for raw_frame in websocket:
                await self.handle_frame(context, raw_frame)
        except websockets.exceptions.ConnectionClosed:
            logger.debug("Connection %s closed", context.conn_id)
        except Exception as e:
            logger.exception("Error handling connection %s: %s", context.conn_id, e)
        finally:
            await self.close_connection(context)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def open_connection(self, connection: TransportConnection) -> ConnectionContext:
        """Register a new transport; it starts UNAUTHENTICATED."""
        context = ConnectionContext(connection, self._send_timeout)
        self._connection_registry.register(connection)
        self._contexts[connection.conn_id] = context
        return context

    async def close_connection(self, context: ConnectionContext) -> None:
        """
        Tear a connection down. Safe to call more than once.

        A joined connection leaves its room and peers get ``user-left``;
        an unauthenticated one disappears silently.
        """
        if context.state is SessionState.CLOSED:
            return
        context.state = SessionState.CLOSED

        await self._leave(context, notify_peers=True)

        self._connection_registry.unregister(context.conn_id)
        self._contexts.pop(context.conn_id, None)
        logger.info("Connection %s closed", context.conn_id)

    async def handle_frame(self, context: ConnectionContext, raw_frame: Any) -> None:
        """Decode one inbound frame and dispatch it."""
        if context.state is SessionState.CLOSED:
            return
        try:
            event = Event.deserialize(raw_frame)
        except ProtocolError as e:
            logger.warning("Dropping frame from %s: %s", context.conn_id, e)
            return
        try:
            await self.dispatch(context, event)
        except Exception as e:
            logger.exception("Error processing %s from %s: %s", event.type.value, context.conn_id, e)

    async def dispatch(self, context: ConnectionContext, event: Event) -> None:
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.debug("Ignoring server-side event %s from %s", event.type.value, context.conn_id)
            return
        await handler(context, event.data)

    # ------------------------------------------------------------------
    # Protocol handlers
    # ------------------------------------------------------------------

    async def handle_join(self, context: ConnectionContext, data: Any) -> None:
        """
        join-group: authenticate, bind the connection to its room, deliver
        history and tell the other members.
        """
        if context.state is SessionState.JOINED:
            await context.send(create_join_error(ALREADY_JOINED))
            return
        if context.state is not SessionState.UNAUTHENTICATED:
            return
        if context.joining:
            await context.send(create_join_error(JOIN_IN_PROGRESS))
            return

        context.joining = True
        try:
            await self._join(context, data)
        finally:
            context.joining = False

    async def _join(self, context: ConnectionContext, data: Any) -> None:
        try:
            request = parse_join_request(data, self._max_username_length)
            result = await self._authenticator.authenticate(request.group_name, request.password)
            if not result.success:
                raise AuthError(result.error_message or INVALID_CREDENTIALS)
        except (ValidationError, AuthError) as e:
            await context.send(create_join_error(e.message))
            return
        except PersistenceError as e:
            logger.error("Join for %s failed: %s", context.conn_id, e)
            await context.send(create_join_error(JOIN_UNAVAILABLE))
            return

        if context.state is not SessionState.UNAUTHENTICATED:
            logger.debug("Connection %s went away during authentication", context.conn_id)
            return

        session = GroupSession(
            conn_id=context.conn_id,
            username=request.username,
            group_id=result.group_id,
            group_name=result.group_name,
        )

        async with self._rooms.exclusive(session.group_name) as room:
            try:
                # Re-check under the room lock: an admin change may have
                # evicted this room while we were authenticating.
                group = await asyncio.to_thread(self._store.get_group, session.group_name)
                if group is None or not group.is_active or group.id != session.group_id:
                    await context.send(create_join_error(INVALID_CREDENTIALS))
                    return
                history = await asyncio.to_thread(
                    self._store.recent_messages, session.group_id, self._history_limit
                )
            except PersistenceError as e:
                logger.error("Join for %s failed: %s", context.conn_id, e)
                await context.send(create_join_error(JOIN_UNAVAILABLE))
                return

            if context.state is not SessionState.UNAUTHENTICATED:
                logger.debug("Connection %s went away during join", context.conn_id)
                return

            self._sessions.put(session)
            room.join(context.conn_id)
            context.session = session
            context.state = SessionState.JOINED

            await context.send(create_join_success(session.group_name, session.username, session.group_id))
            await context.send(create_chat_history(history))
            await room.broadcast(create_join_message(session.username), exclude=context.conn_id)

        logger.info("User %s joined group %s (%s)", session.username, session.group_name, context.conn_id)
        await self._mirror_record(session)

    async def handle_send_message(self, context: ConnectionContext, data: Any) -> None:
        """
        send-message: persist, then broadcast to the whole room including
        the sender. Ignored unless the connection has joined.
        """
        session = self._sessions.get(context.conn_id)
        if context.state is not SessionState.JOINED or session is None:
            return

        try:
            text = clean_message_text(data, self._max_message_length)
        except ValidationError as e:
            await context.send(create_message_error(e.message))
            return
        if not text:
            return

        async with self._rooms.exclusive(session.group_name) as room:
            if self._sessions.get(context.conn_id) is not session:
                return
            try:
                row = await asyncio.to_thread(
                    self._store.add_message, session.group_id, session.username, text
                )
            except NotFoundError:
                logger.info("Group %s vanished under %s", session.group_name, session.username)
                self._detach(context, session, room)
                await context.send(create_group_removed(session.group_name, GROUP_REMOVED))
                removed = True
            except PersistenceError as e:
                logger.error("Could not store message from %s: %s", session.username, e)
                await context.send(create_message_error(SEND_FAILED))
                return
            else:
                removed = False
                await room.broadcast_all(create_new_message(row))

        if removed:
            await self._mirror_remove(session)

    async def handle_typing_start(self, context: ConnectionContext, data: Any = None) -> None:
        await self._typing(context, typing=True)

    async def handle_typing_stop(self, context: ConnectionContext, data: Any = None) -> None:
        await self._typing(context, typing=False)

    async def _typing(self, context: ConnectionContext, typing: bool) -> None:
        session = self._sessions.get(context.conn_id)
        if context.state is not SessionState.JOINED or session is None:
            return
        async with self._rooms.exclusive(session.group_name) as room:
            if self._sessions.get(context.conn_id) is not session:
                return
            await room.broadcast(create_typing_message(session.username, typing), exclude=context.conn_id)

    async def handle_leave(self, context: ConnectionContext, data: Any = None) -> None:
        """leave-group: like a disconnect, but the socket stays open."""
        await self._leave(context, notify_peers=True)

    async def _leave(self, context: ConnectionContext, notify_peers: bool) -> Optional[GroupSession]:
        session = self._sessions.get(context.conn_id)
        if session is None:
            return None

        async with self._rooms.exclusive(session.group_name) as room:
            if self._sessions.get(context.conn_id) is not session:
                return None
            self._detach(context, session, room)
            if notify_peers:
                await room.broadcast(create_leave_message(session.username), exclude=context.conn_id)

        logger.info("User %s left group %s (%s)", session.username, session.group_name, context.conn_id)
        await self._mirror_remove(session)
        return session

    def _detach(self, context: ConnectionContext, session: GroupSession, room: RoomHandle) -> None:
        """Drop session and membership together. Caller holds the room lock."""
        self._sessions.remove(session.conn_id)
        room.leave(session.conn_id)
        if context.session is session:
            context.session = None
        if context.state is SessionState.JOINED:
            context.state = SessionState.UNAUTHENTICATED

    # ------------------------------------------------------------------
    # Admin-side reconciliation
    # ------------------------------------------------------------------

    async def evict_group(self, group_name: str, reason: str = GROUP_REMOVED) -> int:
        """
        Force every live session of a room out, e.g. after the group was
        deleted, deactivated or renamed.

        Each member receives ``group-removed`` and returns to
        UNAUTHENTICATED; its socket stays open.

        Returns:
            Number of sessions evicted
        """
        async with self._rooms.exclusive(group_name) as room:
            evicted = self._sessions.in_group(group_name)
            for session in evicted:
                context = self._contexts.get(session.conn_id)
                if context is not None:
                    self._detach(context, session, room)
                else:
                    self._sessions.remove(session.conn_id)
                    room.leave(session.conn_id)
            if evicted:
                await room.send_to(
                    [s.conn_id for s in evicted],
                    create_group_removed(group_name, reason),
                )

        for session in evicted:
            await self._mirror_remove(session)
        if evicted:
            logger.info("Evicted %d session(s) from group %s", len(evicted), group_name)
        return len(evicted)

    # ------------------------------------------------------------------
    # Session mirror (best effort)
    # ------------------------------------------------------------------

    async def _mirror_record(self, session: GroupSession) -> None:
        if self._session_mirror is None:
            return
        try:
            await asyncio.to_thread(
                self._session_mirror.record_session,
                session.conn_id, session.username, session.group_id
            )
        except Exception as e:
            logger.warning("Could not mirror session %s: %s", session.conn_id, e)

    async def _mirror_remove(self, session: GroupSession) -> None:
        if self._session_mirror is None:
            return
        try:
            await asyncio.to_thread(self._session_mirror.remove_session, session.conn_id)
        except Exception as e:
            logger.warning("Could not remove mirrored session %s: %s", session.conn_id, e)

