"""
Server startup module for GroupChat application.
Provides the entry point for starting the chat server and the admin api.
"""

import asyncio
import logging

import uvicorn

from GroupChat.api.routes import create_app
from GroupChat.config import config
from GroupChat.core.logging import auto_configure
from GroupChat.core.server import GroupChatManager, PersistenceError, SQLiteStore

logger = logging.getLogger(__name__)


def open_store(db_path: str = config.SQLITE_DB_FILE) -> SQLiteStore:
    """Open the database and drop session rows left over from a previous run."""
    store = SQLiteStore(db_path)
    stale = store.clear_sessions()
    if stale:
        logger.info("Cleared %d stale session rows", stale)
    return store


async def serve(host: str, port: int, store: SQLiteStore, srv_only: bool = False) -> None:
    """
    Run the websocket server and, unless srv_only, the admin api on port + 1.

    Both share one event loop so admin changes can evict live sessions.
    """
    manager = GroupChatManager(store, session_mirror=store)

    async with manager.run(host, port):
        if srv_only:
            await asyncio.Future()
            return

        api_config = uvicorn.Config(
            create_app(store, manager),
            host="0.0.0.0",
            port=port + 1,
            log_level="info",
        )
        await uvicorn.Server(api_config).serve()


def server(port=config.DEFAULT_SERVER_PORT, srv_only=False, host=config.DEFAULT_HOST):
    """
    Start the chat server and the admin api on the specified port.

    Args:
        port (int): Port number to listen on (default: 8765)
        srv_only (bool): If True, serve the websocket server only.
        host (str): Interface the websocket server binds to.
    """
    auto_configure()

    if not config.ADMIN_PASSWORD:
        logger.warning("ADMIN_PASSWORD is not set; every admin request will be rejected")

    try:
        store = open_store()
    except PersistenceError as e:
        logger.critical("Cannot start: %s", e.message)
        raise SystemExit(1)

    try:
        asyncio.run(serve(host, port, store, srv_only=srv_only))
    except KeyboardInterrupt:
        logger.info("Closed by user.")
    finally:
        store.close()
