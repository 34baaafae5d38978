"""
Checkout redirect, customer portal and the Lemon Squeezy webhook.
"""
import json
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Header, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from luno.config import get_settings
from luno.deps import CurrentUser, DBSession
from luno.errors import AuthenticationError, NotFoundError, ValidationFailedError
from luno.logger import get_logger
from luno.security.validation import validate_email
from luno.services import billing

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["billing"])


def _billing_redirect(error: str) -> RedirectResponse:
    settings = get_settings()
    query = urlencode({"error": error})
    return RedirectResponse(f"{settings.APP_URL.rstrip('/')}/settings/billing?{query}", status_code=307)


@router.get("/checkout")
async def checkout(
    user: CurrentUser,
    plan: Optional[str] = Query(None),
    email: Optional[str] = Query(None, max_length=254),
):
    """Redirect to the hosted checkout for a paid plan."""
    settings = get_settings()
    if plan not in billing.PAID_PLANS:
        return _billing_redirect("invalid_plan")

    email = email or user.email or ""
    if not email or not validate_email(email):
        return _billing_redirect("no_email")

    if not settings.billing_configured:
        logger.warning("checkout_unconfigured", user_id=user.id)
        return _billing_redirect("checkout_failed")

    return RedirectResponse(billing.get_checkout_url(plan, email, user.id), status_code=307)


@router.get("/billing/portal")
async def billing_portal(user: CurrentUser, db: DBSession):
    url = await billing.get_customer_portal_url(db, user.id)
    if not url:
        raise NotFoundError("No subscription found or portal unavailable")
    return {"url": url}


@router.post("/webhooks/lemon")
async def lemon_webhook(
    request: Request,
    db: DBSession,
    x_signature: Optional[str] = Header(None),
):
    """
    Lemon Squeezy webhook.

    The raw body is verified against `X-Signature` (HMAC-SHA256 hex) before
    the event is dispatched.
    """
    settings = get_settings()
    secret = settings.LEMONSQUEEZY_WEBHOOK_SECRET
    if not secret:
        logger.error("lemon_webhook_secret_missing")
        return JSONResponse(status_code=500, content={"error": "Webhook secret not configured"})

    body = await request.body()
    if not billing.verify_webhook_signature(body, x_signature or "", secret):
        logger.warning("lemon_webhook_bad_signature")
        raise AuthenticationError("Invalid signature")

    try:
        event = json.loads(body)
    except ValueError as e:
        raise ValidationFailedError("Invalid event format") from e
    if not isinstance(event, dict):
        raise ValidationFailedError("Invalid event format")

    billing.process_webhook_event(db, event)
    return {"received": True}
