from typing import Optional

import uvicorn
from fastapi import FastAPI

from GroupChat.config import config
from GroupChat.core.server.storage_sqlite import SQLiteStore
from GroupChat.core.server.websocket_manager import GroupChatManager
from .routes_api import groups_router, router
from .routes_base import create_base_app


def create_app(store: SQLiteStore, manager: Optional[GroupChatManager] = None) -> FastAPI:
    """
    Build the admin API.

    Args:
        store: Group / message store shared with the chat server
        manager: Chat manager running in the same event loop; when given,
            deleting, deactivating or renaming a group evicts its live sessions
    """
    app = create_base_app()
    app.state.store = store
    app.state.manager = manager
    app.include_router(router)
    app.include_router(groups_router)
    return app


def run(api_port: int = config.DEFAULT_API_PORT, db_path: str = config.SQLITE_DB_FILE):
    """
    Run the admin API alone with Uvicorn (no live-session eviction).

    Args:
        api_port (int): Port for the api.
        db_path (str): SQLite database file.
    """
    app = create_app(SQLiteStore(db_path))
    uvicorn.run(app, host="0.0.0.0", port=api_port)
