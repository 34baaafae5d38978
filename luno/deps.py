"""
Dependency injection for FastAPI routes.
Provides database sessions, the current user, chat clients and webhook checks.
"""
from typing import Annotated, Any, Callable, Iterator, Optional

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from openai import AsyncOpenAI
from sqlmodel import Session

from luno.config import get_settings
from luno.db.database import get_engine
from luno.db.models import User
from luno.errors import AuthenticationError, ServiceUnavailableError
from luno.security.auth import decode_access_token


# === Database Dependencies ===

def get_db_session() -> Iterator[Session]:
    """
    Database session dependency for FastAPI routes.

    Usage:
        @router.get("/accounts")
        def list_accounts(db: DBSession):
            return db.exec(select(Account)).all()
    """
    with Session(get_engine()) as session:
        yield session


# === Authentication ===

_bearer = HTTPBearer(auto_error=False)


def get_current_user(
    request: Request,
    db: Annotated[Session, Depends(get_db_session)],
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(_bearer)] = None,
) -> User:
    """
    Resolve the bearer token to a user.

    Raises:
        AuthenticationError: token missing, invalid, expired, or user gone
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError()

    claims = decode_access_token(credentials.credentials)
    try:
        user_id = int(claims["sub"])
    except (KeyError, TypeError, ValueError) as e:
        raise AuthenticationError("Invalid token") from e

    user = db.get(User, user_id)
    if user is None:
        raise AuthenticationError()
    request.state.user_id = user.id
    return user


# === Chat Clients ===

_chat_clients: dict[str, AsyncOpenAI] = {}


def get_chat_client(provider: str) -> AsyncOpenAI:
    """
    OpenAI-compatible client for a chat provider.

    Gemini is reached through Google's OpenAI-compatible endpoint.

    Raises:
        ServiceUnavailableError: the provider's API key is not configured
    """
    settings = get_settings()
    if provider not in _chat_clients:
        if provider == "openai":
            if not settings.OPENAI_API_KEY:
                raise ServiceUnavailableError("Chat unavailable: OPENAI_API_KEY not configured")
            _chat_clients[provider] = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        else:
            if not settings.GOOGLE_API_KEY:
                raise ServiceUnavailableError("Chat unavailable: GOOGLE_API_KEY not configured")
            _chat_clients[provider] = AsyncOpenAI(
                api_key=settings.GOOGLE_API_KEY,
                base_url=settings.GOOGLE_OPENAI_BASE_URL,
            )
    return _chat_clients[provider]


def reset_chat_clients() -> None:
    _chat_clients.clear()


def get_chat_client_factory() -> Callable[[str], Any]:
    """
    Route dependency returning the client factory.

    Tests override this to inject a fake client.
    """
    return get_chat_client


# === Webhook Authentication ===

def verify_webhook_secret(
    x_webhook_secret: Annotated[Optional[str], Header()] = None
) -> bool:
    """
    Verify the job webhook secret.

    Usage:
        @router.post("/jobs/check-notifications")
        async def run(verified: bool = Depends(verify_webhook_secret)):
            if not verified:
                raise AuthenticationError()
    """
    settings = get_settings()

    # If no secret configured, allow all requests (dev mode)
    if not settings.NOTIFICATIONS_WEBHOOK_SECRET:
        return True

    return x_webhook_secret == settings.NOTIFICATIONS_WEBHOOK_SECRET


# === Type Aliases ===

DBSession = Annotated[Session, Depends(get_db_session)]
CurrentUser = Annotated[User, Depends(get_current_user)]
ChatClientFactory = Annotated[Callable[[str], Any], Depends(get_chat_client_factory)]
