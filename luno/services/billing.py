"""
Lemon Squeezy billing: checkout links, customer portal and webhook events.

Webhook payloads follow Lemon Squeezy's JSON:API shape:

    {"meta": {"event_name": ..., "custom_data": {...}},
     "data": {"id": ..., "attributes": {...}}}
"""
import hashlib
import hmac
from datetime import datetime
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
from sqlmodel import Session, select

from luno.config import get_settings
from luno.db.models import UserSubscription, utc_now
from luno.errors import ValidationFailedError
from luno.logger import get_logger
from luno.security.encryption import EncryptionError, decrypt_json, encrypt_json
from luno.services import limits
from luno.services.cache import invalidate_subscription_cache
from luno.services.http import request_with_retry

logger = get_logger(__name__)

PAID_PLANS = ("pro", "family")


# === Checkout and portal ===

def get_checkout_url(plan_type: str, email: str, user_id: int) -> str:
    """Hosted checkout URL with the user's email and id attached."""
    settings = get_settings()
    if plan_type not in PAID_PLANS:
        raise ValidationFailedError("Invalid plan")

    variant_id = (
        settings.LEMONSQUEEZY_PRO_VARIANT_ID
        if plan_type == "pro"
        else settings.LEMONSQUEEZY_FAMILY_VARIANT_ID
    )
    params = urlencode({
        "checkout[email]": email,
        "checkout[custom][user_id]": str(user_id),
    })
    return f"https://{settings.LEMONSQUEEZY_STORE_URL}/checkout/buy/{variant_id}?{params}"


async def get_customer_portal_url(session: Session, user_id: int) -> Optional[str]:
    """Customer portal link, or None when the user has no Lemon Squeezy customer."""
    settings = get_settings()
    subscription = _get_subscription(session, user_id)
    if subscription is None or not subscription.lemon_squeezy_customer_id:
        return None

    url = f"{settings.LEMONSQUEEZY_API_BASE_URL}/v1/customers/{subscription.lemon_squeezy_customer_id}"
    try:
        response = await request_with_retry(
            "GET",
            url,
            headers={
                "Accept": "application/vnd.api+json",
                "Authorization": f"Bearer {settings.LEMONSQUEEZY_API_KEY}",
            },
        )
    except httpx.HTTPError as e:
        logger.error("customer_portal_fetch_failed", user_id=user_id, error=str(e))
        return None

    data = response.json().get("data") or {}
    return ((data.get("attributes") or {}).get("urls") or {}).get("customer_portal")


# === Secure storage ===

def _get_subscription(session: Session, user_id: int) -> Optional[UserSubscription]:
    return session.exec(
        select(UserSubscription).where(UserSubscription.user_id == user_id)
    ).first()


def _get_by_lemon_id(session: Session, subscription_id: str) -> Optional[UserSubscription]:
    return session.exec(
        select(UserSubscription).where(
            UserSubscription.lemon_squeezy_subscription_id == subscription_id
        )
    ).first()


def store_subscription_data(
    session: Session,
    user_id: int,
    subscription_id: str,
    customer_id: str,
    order_id: Optional[str] = None,
    card_last_four: Optional[str] = None,
    card_brand: Optional[str] = None,
) -> UserSubscription:
    """Upsert Lemon Squeezy ids, encrypting card details."""
    payment_metadata = {}
    if card_last_four:
        payment_metadata["payment_method_last_four"] = card_last_four
    if card_brand:
        payment_metadata["payment_method_brand"] = card_brand

    subscription = _get_subscription(session, user_id)
    if subscription is None:
        # Plan is set by the webhook handler after this call
        subscription = UserSubscription(user_id=user_id, plan_type="free")

    subscription.lemon_squeezy_subscription_id = subscription_id
    subscription.lemon_squeezy_customer_id = customer_id
    if order_id is not None:
        subscription.lemon_squeezy_order_id = order_id
    subscription.secure_metadata = encrypt_json(payment_metadata) if payment_metadata else None
    subscription.updated_at = utc_now()

    session.add(subscription)
    session.commit()
    session.refresh(subscription)
    return subscription


def get_subscription_data(session: Session, user_id: int) -> Optional[dict[str, Any]]:
    """Subscription row with decrypted payment metadata."""
    subscription = _get_subscription(session, user_id)
    if subscription is None:
        return None

    payment_metadata = None
    if subscription.secure_metadata:
        try:
            payment_metadata = decrypt_json(subscription.secure_metadata)
        except EncryptionError as e:
            logger.error("subscription_metadata_decrypt_failed", user_id=user_id, error=str(e))

    data = subscription.model_dump(exclude={"secure_metadata"})
    data["status"] = subscription.status or "active"
    data["payment_metadata"] = payment_metadata
    return data


# === Webhooks ===

def verify_webhook_signature(payload: bytes, signature: str, secret: str) -> bool:
    """HMAC-SHA256 hex digest of the raw body, compared in constant time."""
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    provided = (signature or "").encode("utf-8", "surrogateescape")
    return hmac.compare_digest(digest.encode("ascii"), provided)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _plan_for_variant(variant_id: Any) -> str:
    settings = get_settings()
    variant = str(variant_id) if variant_id is not None else None
    if variant and variant == settings.LEMONSQUEEZY_FAMILY_VARIANT_ID:
        return "family"
    return "pro"


def _resolve_user_id(event: dict[str, Any]) -> Optional[int]:
    meta_custom = (event.get("meta") or {}).get("custom_data") or {}
    attributes = (event.get("data") or {}).get("attributes") or {}
    attr_custom = attributes.get("custom_data") or {}
    raw = meta_custom.get("user_id") or attr_custom.get("user_id")
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def _update_status(session: Session, subscription_id: str, **fields: Any) -> Optional[UserSubscription]:
    subscription = _get_by_lemon_id(session, subscription_id)
    if subscription is None:
        logger.warning("subscription_not_found", subscription_id=subscription_id)
        return None
    for key, value in fields.items():
        setattr(subscription, key, value)
    subscription.updated_at = utc_now()
    session.add(subscription)
    session.commit()
    invalidate_subscription_cache(subscription.user_id)
    return subscription


def handle_subscription_created(session: Session, event: dict[str, Any]) -> None:
    data = event["data"]
    attributes = data.get("attributes") or {}

    user_id = _resolve_user_id(event)
    if user_id is None:
        logger.error("subscription_user_unknown", subscription_id=str(data.get("id")))
        return

    plan_type = _plan_for_variant(attributes.get("variant_id"))

    subscription = store_subscription_data(
        session,
        user_id,
        subscription_id=str(data["id"]),
        customer_id=str(attributes.get("customer_id") or ""),
        order_id=str(attributes["order_id"]) if attributes.get("order_id") is not None else None,
        card_last_four=attributes.get("card_last_four"),
        card_brand=attributes.get("card_brand"),
    )

    subscription.plan_type = plan_type
    subscription.status = attributes.get("status") or "active"
    subscription.current_period_start = _parse_datetime(attributes.get("created_at")) or utc_now()
    subscription.current_period_end = _parse_datetime(attributes.get("renews_at"))
    subscription.updated_at = utc_now()
    session.add(subscription)
    session.commit()

    limits.update_subscription_limits(session, user_id, plan_type)
    logger.info("subscription_created", user_id=user_id, plan_type=plan_type)


def handle_subscription_updated(session: Session, event: dict[str, Any]) -> None:
    data = event["data"]
    attributes = data.get("attributes") or {}
    subscription_id = str(data["id"])

    subscription = _update_status(
        session,
        subscription_id,
        status=attributes.get("status") or "active",
        current_period_end=_parse_datetime(attributes.get("renews_at")),
        cancel_at_period_end=bool(attributes.get("cancelled")),
    )
    if subscription is None:
        return

    if attributes.get("card_last_four") or attributes.get("card_brand"):
        store_subscription_data(
            session,
            subscription.user_id,
            subscription_id=subscription_id,
            customer_id=str(attributes.get("customer_id") or subscription.lemon_squeezy_customer_id or ""),
            card_last_four=attributes.get("card_last_four"),
            card_brand=attributes.get("card_brand"),
        )


def handle_subscription_cancelled(session: Session, event: dict[str, Any]) -> None:
    # Plan stays until subscription_expired arrives
    _update_status(session, str(event["data"]["id"]), status="canceled", cancel_at_period_end=True)


def handle_subscription_expired(session: Session, event: dict[str, Any]) -> None:
    subscription = _update_status(session, str(event["data"]["id"]), plan_type="free", status="expired")
    if subscription is not None:
        limits.update_subscription_limits(session, subscription.user_id, "free")


def handle_payment_success(session: Session, event: dict[str, Any]) -> None:
    _update_status(session, str(event["data"]["id"]), status="active")


def handle_payment_failed(session: Session, event: dict[str, Any]) -> None:
    _update_status(session, str(event["data"]["id"]), status="past_due")


def handle_order_created(session: Session, event: dict[str, Any]) -> None:
    logger.info("order_created", order_id=str((event.get("data") or {}).get("id")))


EVENT_HANDLERS = {
    "subscription_created": handle_subscription_created,
    "subscription_updated": handle_subscription_updated,
    "subscription_cancelled": handle_subscription_cancelled,
    "subscription_expired": handle_subscription_expired,
    "subscription_payment_success": handle_payment_success,
    "subscription_payment_recovered": handle_payment_success,
    "subscription_payment_failed": handle_payment_failed,
    "order_created": handle_order_created,
}


def process_webhook_event(session: Session, event: dict[str, Any]) -> str:
    """
    Dispatch a verified webhook event.

    Returns:
        The event name

    Raises:
        ValidationFailedError: meta.event_name missing
    """
    event_name = (event.get("meta") or {}).get("event_name")
    if not event_name:
        raise ValidationFailedError("Invalid event format")

    logger.info("lemon_webhook_received", event_name=event_name)
    handler = EVENT_HANDLERS.get(event_name)
    if handler is None:
        logger.info("lemon_webhook_unhandled", event_name=event_name)
        return event_name

    data = event.get("data")
    if not isinstance(data, dict) or data.get("id") is None:
        raise ValidationFailedError("Invalid event format")
    handler(session, event)
    return event_name
