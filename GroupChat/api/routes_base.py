# Standard library imports
import logging
from typing import Optional

# Third-party imports
from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

# Local imports
from GroupChat import __version__ as __main_version__
from GroupChat.core.server.auth import verify_admin_password
from GroupChat.core.server.storage_sqlite import SQLiteStore
from GroupChat.core.server.websocket_manager import GroupChatManager

logger = logging.getLogger(__name__)

UNAUTHORIZED = "Unauthorized: Admin access required"


class CreateGroupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    group_name: Optional[str] = Field(default=None, alias="groupName")
    password: Optional[str] = None


class UpdateGroupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    new_group_name: Optional[str] = Field(default=None, alias="newGroupName")
    new_password: Optional[str] = Field(default=None, alias="newPassword")
    is_active: Optional[bool] = Field(default=None, alias="isActive")


def get_store(request: Request) -> SQLiteStore:
    return request.app.state.store


def get_manager(request: Request) -> Optional[GroupChatManager]:
    """The in-process chat manager, or None when the API runs on its own."""
    return getattr(request.app.state, "manager", None)


async def require_admin(admin_password: Optional[str] = Header(default=None)) -> None:
    """Check the 'admin-password' header against the configured secret."""
    if not verify_admin_password(admin_password):
        logger.warning("Rejected admin request with missing or wrong admin password")
        raise HTTPException(status_code=401, detail=UNAUTHORIZED)


def create_base_app() -> FastAPI:
    """FastAPI application with middleware and the JSON error format."""
    app = FastAPI(
        title="GroupChat api",
        version=__main_version__,
        description="Admin api for GroupChat, a password-protected group chat relay.",
        contact={"name": "GroupChat Team"}
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    return app
