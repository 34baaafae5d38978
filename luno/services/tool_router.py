"""
Composio Tool Router sessions, external connections and the MCP client.

A Tool Router session is an MCP endpoint scoped to one user. Sessions are
stored locally with a short expiry; the chat assistant opens an MCP
connection to the newest active one and exposes its tools to the model.
"""
import json
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, AsyncIterator, Optional

import httpx
from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client
from sqlmodel import Session, select

from luno.config import get_settings
from luno.db.models import ExternalConnection, ToolRouterSession, as_utc, utc_now
from luno.errors import NotFoundError, ServiceUnavailableError
from luno.logger import get_logger
from luno.security.encryption import encrypt_json
from luno.services import limits
from luno.services.cache import invalidate_bank_connection_cache
from luno.services.http import request_with_retry

logger = get_logger(__name__)

SESSION_PATH = "/api/v3/labs/tool_router/session"


# === Sessions ===

def _session_url(payload: dict[str, Any]) -> Optional[str]:
    return (
        payload.get("url")
        or payload.get("chat_session_mcp_url")
        or payload.get("tool_router_instance_mcp_url")
    )


async def create_session(session: Session, user_id: int, toolkits: Optional[list[str]] = None) -> ToolRouterSession:
    """
    Create a Tool Router session at Composio and persist it.

    Raises:
        ServiceUnavailableError: COMPOSIO_API_KEY not set, or Composio failed
    """
    settings = get_settings()
    if not settings.tool_router_configured:
        raise ServiceUnavailableError("Tool Router is not configured")

    toolkits = toolkits or []
    try:
        response = await request_with_retry(
            "POST",
            f"{settings.COMPOSIO_BASE_URL.rstrip('/')}{SESSION_PATH}",
            headers={"x-api-key": settings.COMPOSIO_API_KEY},
            json={"user_id": str(user_id), "toolkits": toolkits},
        )
    except httpx.HTTPError as e:
        logger.error("tool_router_session_failed", user_id=user_id, error=str(e))
        raise ServiceUnavailableError("Failed to create Tool Router session") from e

    payload = response.json()
    url = _session_url(payload)
    if not url:
        raise ServiceUnavailableError("Tool Router returned no session URL")

    record = ToolRouterSession(
        user_id=user_id,
        session_id=payload.get("session_id"),
        session_url=url,
        toolkits=json.dumps(toolkits),
        expires_at=utc_now() + timedelta(minutes=settings.TOOL_ROUTER_SESSION_TTL_MINUTES),
        is_active=True,
    )
    session.add(record)
    session.commit()
    session.refresh(record)

    logger.info("tool_router_session_created", user_id=user_id, session_id=record.id)
    return record


def get_active_session(session: Session, user_id: int) -> Optional[ToolRouterSession]:
    """Newest active, unexpired session for the user."""
    now = utc_now()
    candidates = session.exec(
        select(ToolRouterSession)
        .where(ToolRouterSession.user_id == user_id, ToolRouterSession.is_active == True)  # noqa: E712
        .order_by(ToolRouterSession.created_at.desc())
    ).all()
    for candidate in candidates:
        if as_utc(candidate.expires_at) > now:
            return candidate
    return None


def deactivate_session(session: Session, user_id: int, session_id: int) -> None:
    record = session.get(ToolRouterSession, session_id)
    if record is None or record.user_id != user_id:
        raise NotFoundError("Session not found")
    record.is_active = False
    session.add(record)
    session.commit()


def cleanup_expired_sessions(session: Session) -> int:
    """Deactivate sessions past their expiry."""
    now = utc_now()
    active = session.exec(
        select(ToolRouterSession).where(ToolRouterSession.is_active == True)  # noqa: E712
    ).all()
    count = 0
    for record in active:
        if as_utc(record.expires_at) <= now:
            record.is_active = False
            session.add(record)
            count += 1
    session.commit()
    return count


def session_to_dict(record: ToolRouterSession) -> dict[str, Any]:
    return {
        "id": record.id,
        "url": record.session_url,
        "sessionId": record.session_id,
        "toolkits": json.loads(record.toolkits or "[]"),
        "expiresAt": as_utc(record.expires_at).isoformat(),
        "isActive": record.is_active,
    }


# === Connections ===

def save_connection(
    session: Session,
    user_id: int,
    integration_type: str,
    toolkit_name: str,
    entity_id: str,
    entity_name: str,
    connection_id: Optional[str] = None,
    credentials: Optional[dict[str, Any]] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> ExternalConnection:
    """Store a connection; credentials are encrypted at rest."""
    if integration_type == "bank":
        limits.ensure_bank_connection_limit(session, user_id)

    now = utc_now()
    connection = ExternalConnection(
        user_id=user_id,
        integration_type=integration_type,
        toolkit_name=toolkit_name,
        connection_id=connection_id,
        connected_entity_id=entity_id,
        connected_entity_name=entity_name,
        status="active",
        secure_metadata=encrypt_json(credentials) if credentials else None,
        connection_metadata=json.dumps(metadata or {}),
        last_synced_at=now,
    )
    session.add(connection)
    session.commit()
    session.refresh(connection)

    if integration_type == "bank":
        invalidate_bank_connection_cache(user_id)
    logger.info("connection_saved", user_id=user_id, integration_type=integration_type)
    return connection


def get_connections(session: Session, user_id: int, integration_type: Optional[str] = None) -> list[ExternalConnection]:
    statement = select(ExternalConnection).where(
        ExternalConnection.user_id == user_id,
        ExternalConnection.status == "active",
    )
    if integration_type:
        statement = statement.where(ExternalConnection.integration_type == integration_type)
    return session.exec(statement.order_by(ExternalConnection.created_at.desc())).all()


def _get_owned_connection(session: Session, user_id: int, connection_id: int) -> ExternalConnection:
    connection = session.get(ExternalConnection, connection_id)
    if connection is None or connection.user_id != user_id:
        raise NotFoundError("Connection not found")
    return connection


def disconnect_connection(session: Session, user_id: int, connection_id: int) -> None:
    connection = _get_owned_connection(session, user_id, connection_id)
    connection.status = "disconnected"
    connection.updated_at = utc_now()
    session.add(connection)
    session.commit()
    invalidate_bank_connection_cache(user_id)


def update_connection_sync(
    session: Session,
    user_id: int,
    connection_id: int,
    status: str,
    error_message: Optional[str] = None,
) -> ExternalConnection:
    connection = _get_owned_connection(session, user_id, connection_id)
    now = utc_now()
    connection.status = status
    connection.last_synced_at = now
    connection.updated_at = now
    if error_message:
        metadata = json.loads(connection.connection_metadata or "{}")
        metadata["last_error"] = error_message
        connection.connection_metadata = json.dumps(metadata)
    session.add(connection)
    session.commit()
    session.refresh(connection)
    invalidate_bank_connection_cache(user_id)
    return connection


def connection_to_dict(connection: ExternalConnection) -> dict[str, Any]:
    return {
        "id": connection.id,
        "integrationType": connection.integration_type,
        "toolkitName": connection.toolkit_name,
        "entityName": connection.connected_entity_name,
        "status": connection.status,
        "lastSyncedAt": as_utc(connection.last_synced_at).isoformat() if connection.last_synced_at else None,
        "createdAt": as_utc(connection.created_at).isoformat(),
    }


# === MCP ===

@asynccontextmanager
async def open_mcp_session(url: str) -> AsyncIterator[ClientSession]:
    """Initialized MCP client session over streamable HTTP."""
    async with streamablehttp_client(url) as (read_stream, write_stream, _):
        async with ClientSession(read_stream, write_stream) as client:
            await client.initialize()
            yield client


async def list_mcp_tools(client: ClientSession) -> list[dict[str, Any]]:
    """MCP tools as {name, description, input_schema} dicts."""
    result = await client.list_tools()
    return [
        {
            "name": tool.name,
            "description": tool.description or "",
            "input_schema": tool.inputSchema or {"type": "object", "properties": {}},
        }
        for tool in result.tools
    ]


async def call_mcp_tool(client: ClientSession, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """Call a tool and flatten its text content."""
    result = await client.call_tool(name, arguments)
    texts = [block.text for block in result.content if getattr(block, "type", None) == "text"]
    output: dict[str, Any] = {"content": "\n".join(texts)}
    structured = getattr(result, "structuredContent", None)
    if structured is not None:
        output["structured"] = structured
    if result.isError:
        output["isError"] = True
    return output
