# Standard library imports
import asyncio
import logging
from typing import Optional

# Third-party imports
from fastapi import APIRouter, Depends, HTTPException

# Local imports
from GroupChat.config import config
from GroupChat.core.server.auth import hash_password
from GroupChat.core.server.exceptions import ConflictError, NotFoundError, PersistenceError
from GroupChat.core.server.storage_sqlite import SQLiteStore
from GroupChat.core.server.utils.helpers import iso_timestamp
from GroupChat.core.server.websocket_manager import GroupChatManager
from .routes_base import (
    CreateGroupRequest,
    UpdateGroupRequest,
    get_manager,
    get_store,
    require_admin,
)

logger = logging.getLogger(__name__)

router = APIRouter()
groups_router = APIRouter(prefix="/api/groups", dependencies=[Depends(require_admin)])

GROUP_DELETED = "This group has been deleted"
GROUP_DEACTIVATED = "This group has been deactivated"
GROUP_RENAMED = "This group has been renamed; please join again"


def _check_password_length(password: str) -> None:
    if len(password) < config.MIN_GROUP_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {config.MIN_GROUP_PASSWORD_LENGTH} characters long"
        )


def _internal_error(action: str, error: Exception) -> HTTPException:
    logger.error("Error %s: %s", action, error)
    return HTTPException(status_code=500, detail="Internal server error")


@router.get("/health")
async def health():
    return {"status": "OK", "timestamp": iso_timestamp()}


@groups_router.post("/create")
async def create_group(payload: CreateGroupRequest, store: SQLiteStore = Depends(get_store)):
    group_name = (payload.group_name or "").strip()
    password = payload.password or ""

    if not group_name or not password:
        raise HTTPException(status_code=400, detail="Group name and password are required")
    _check_password_length(password)

    try:
        password_hash = await asyncio.to_thread(hash_password, password)
        group = await asyncio.to_thread(store.create_group, group_name, password_hash)
    except ConflictError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except PersistenceError as e:
        raise _internal_error("creating group", e)

    return {
        "message": "Group created successfully",
        "group": {
            "name": group.name,
            "createdAt": iso_timestamp(group.created_at),
        },
    }


@groups_router.put("/{group_name}")
async def update_group(
    group_name: str,
    payload: UpdateGroupRequest,
    store: SQLiteStore = Depends(get_store),
    manager: Optional[GroupChatManager] = Depends(get_manager),
):
    new_name = (payload.new_group_name or "").strip() or None
    password_hash = None
    if payload.new_password:
        _check_password_length(payload.new_password)
        password_hash = await asyncio.to_thread(hash_password, payload.new_password)

    try:
        group = await asyncio.to_thread(
            store.update_group, group_name, new_name, password_hash, payload.is_active
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ConflictError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except PersistenceError as e:
        raise _internal_error("updating group", e)

    evicted = 0
    if manager is not None:
        if not group.is_active:
            evicted = await manager.evict_group(group_name, GROUP_DEACTIVATED)
        elif group.name != group_name:
            evicted = await manager.evict_group(group_name, GROUP_RENAMED)

    return {
        "message": "Group updated successfully",
        "group": {
            "name": group.name,
            "isActive": group.is_active,
            "updatedAt": iso_timestamp(group.updated_at),
        },
        "evictedSessions": evicted,
    }


@groups_router.delete("/{group_name}")
async def delete_group(
    group_name: str,
    store: SQLiteStore = Depends(get_store),
    manager: Optional[GroupChatManager] = Depends(get_manager),
):
    try:
        await asyncio.to_thread(store.delete_group, group_name)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except PersistenceError as e:
        raise _internal_error("deleting group", e)

    evicted = 0
    if manager is not None:
        evicted = await manager.evict_group(group_name, GROUP_DELETED)

    return {
        "message": "Group and all associated messages deleted successfully",
        "evictedSessions": evicted,
    }


@groups_router.get("")
async def list_groups(store: SQLiteStore = Depends(get_store)):
    try:
        groups = await asyncio.to_thread(store.list_groups)
    except PersistenceError as e:
        raise _internal_error("fetching groups", e)

    return [
        {
            "name": g.name,
            "createdAt": iso_timestamp(g.created_at),
            "updatedAt": iso_timestamp(g.updated_at),
            "messageCount": g.message_count,
        }
        for g in groups
    ]


@groups_router.get("/stats")
async def group_stats(
    store: SQLiteStore = Depends(get_store),
    manager: Optional[GroupChatManager] = Depends(get_manager),
):
    try:
        stats = await asyncio.to_thread(store.stats)
        if manager is not None:
            active_sessions = manager.active_session_count()
        else:
            active_sessions = await asyncio.to_thread(store.count_sessions)
    except PersistenceError as e:
        raise _internal_error("fetching stats", e)

    return {
        "totalGroups": stats["total_groups"],
        "totalMessages": stats["total_messages"],
        "activeSessions": active_sessions,
        "recentGroups": [
            {"name": g["name"], "createdAt": iso_timestamp(g["created_at"])}
            for g in stats["recent_groups"]
        ],
    }
