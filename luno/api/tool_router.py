"""
Composio Tool Router sessions and external connections.
"""
from fastapi import APIRouter, Depends, Request

from luno.config import get_settings
from luno.deps import CurrentUser, DBSession
from luno.errors import NotFoundError, ServiceUnavailableError
from luno.logger import log_api_request
from luno.schemas import (
    ConnectionCreate,
    ConnectionDelete,
    ConnectionSyncUpdate,
    ToolRouterSessionCreate,
    ToolRouterSessionDelete,
)
from luno.security.rate_limit import rate_limit
from luno.services import tool_router

router = APIRouter(prefix="/api/tool-router", tags=["tool-router"])

write_limit = Depends(rate_limit(10))
read_limit = Depends(rate_limit(20))


def require_tool_router() -> None:
    if not get_settings().tool_router_configured:
        raise ServiceUnavailableError("Tool Router is not configured")


# === Sessions ===

@router.post("/session", dependencies=[write_limit, Depends(require_tool_router)])
async def create_session(request: Request, body: ToolRouterSessionCreate, user: CurrentUser, db: DBSession):
    log_api_request("POST", request.url.path, user.id)
    record = await tool_router.create_session(db, user.id, body.toolkits)
    return {
        "success": True,
        "session": {"url": record.session_url, "sessionId": record.session_id},
    }


@router.get("/session", dependencies=[read_limit, Depends(require_tool_router)])
async def get_session(request: Request, user: CurrentUser, db: DBSession):
    log_api_request("GET", request.url.path, user.id)
    record = tool_router.get_active_session(db, user.id)
    if record is None:
        raise NotFoundError("No active session found")
    return {"success": True, "session": tool_router.session_to_dict(record)}


@router.delete("/session", dependencies=[write_limit, Depends(require_tool_router)])
async def delete_session(request: Request, body: ToolRouterSessionDelete, user: CurrentUser, db: DBSession):
    log_api_request("DELETE", request.url.path, user.id)
    tool_router.deactivate_session(db, user.id, body.session_id)
    return {"success": True, "message": "Session deactivated successfully"}


# === Connections ===

@router.post("/connections", dependencies=[write_limit])
async def create_connection(request: Request, body: ConnectionCreate, user: CurrentUser, db: DBSession):
    """Store a connection; bank connections count against the plan limit."""
    log_api_request("POST", request.url.path, user.id)
    data = body.connection_data
    connection = tool_router.save_connection(
        db,
        user.id,
        body.integration_type,
        body.toolkit_name,
        entity_id=data.entity_id,
        entity_name=data.entity_name,
        connection_id=data.connection_id,
        credentials=data.credentials,
        metadata=data.metadata,
    )
    out = tool_router.connection_to_dict(connection)
    out.pop("createdAt")
    return {"success": True, "connection": out}


@router.get("/connections", dependencies=[read_limit])
async def list_connections(request: Request, user: CurrentUser, db: DBSession):
    log_api_request("GET", request.url.path, user.id)
    return {
        "success": True,
        "connections": [tool_router.connection_to_dict(c) for c in tool_router.get_connections(db, user.id)],
    }


@router.delete("/connections", dependencies=[write_limit])
async def delete_connection(request: Request, body: ConnectionDelete, user: CurrentUser, db: DBSession):
    log_api_request("DELETE", request.url.path, user.id)
    tool_router.disconnect_connection(db, user.id, body.connection_id)
    return {"success": True, "message": "Connection disconnected successfully"}


@router.patch("/connections", dependencies=[write_limit])
async def update_connection_sync(request: Request, body: ConnectionSyncUpdate, user: CurrentUser, db: DBSession):
    """Record the outcome of a sync; errors are kept in the connection metadata."""
    log_api_request("PATCH", request.url.path, user.id)
    connection = tool_router.update_connection_sync(db, user.id, body.connection_id, body.status, body.error)
    return {"success": True, "connection": tool_router.connection_to_dict(connection)}
