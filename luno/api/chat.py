"""
Chat assistant endpoint.
"""
from typing import Any

from fastapi import APIRouter, Body, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from luno.config import get_settings
from luno.deps import ChatClientFactory, CurrentUser, DBSession
from luno.errors import ValidationFailedError
from luno.logger import log_api_request
from luno.schemas import ChatRequest, ChatResponse
from luno.services import chat

router = APIRouter(prefix="/api", tags=["chat"])


@router.post("/chat", response_model=ChatResponse)
async def chat_completion(
    request: Request,
    user: CurrentUser,
    db: DBSession,
    client_factory: ChatClientFactory,
    payload: dict[str, Any] = Body(...),
):
    """
    Run the assistant over a conversation.

    The provider defaults to DEFAULT_CHAT_PROVIDER; an unconfigured provider
    returns 503.
    """
    if not isinstance(payload.get("messages"), list):
        raise ValidationFailedError("Invalid request: messages array required")
    try:
        body = ChatRequest.model_validate(payload)
    except ValidationError as e:
        raise RequestValidationError(e.errors()) from e

    log_api_request("POST", request.url.path, user.id)

    settings = get_settings()
    provider = body.provider or settings.DEFAULT_CHAT_PROVIDER
    model_id = body.model_id or settings.DEFAULT_CHAT_MODEL
    client = client_factory(provider)

    return await chat.run_chat(
        client,
        db,
        user.id,
        [m.model_dump() for m in body.messages],
        provider,
        model_id,
    )
