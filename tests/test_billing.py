"""
Checkout redirects, the Lemon Squeezy webhook and subscription storage.
"""
import hashlib
import hmac
import json
from urllib.parse import parse_qs, urlparse

from sqlmodel import select

from luno.db.models import SubscriptionLimits, UserSubscription
from luno.services import billing

WEBHOOK_SECRET = "whsec_test"


def _signed(payload):
    body = json.dumps(payload).encode("utf-8")
    signature = hmac.new(WEBHOOK_SECRET.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return body, signature


def _post_webhook(client, payload, signature=None):
    body, good_signature = _signed(payload)
    return client.post(
        "/api/webhooks/lemon",
        content=body,
        headers={"X-Signature": signature or good_signature, "Content-Type": "application/json"},
    )


def _created_event(user_id, variant_id="111", subscription_id="sub_1"):
    return {
        "meta": {"event_name": "subscription_created", "custom_data": {"user_id": str(user_id)}},
        "data": {
            "id": subscription_id,
            "attributes": {
                "variant_id": variant_id,
                "customer_id": 555,
                "order_id": 777,
                "status": "active",
                "card_brand": "visa",
                "card_last_four": "4242",
                "created_at": "2024-05-01T10:00:00.000000Z",
                "renews_at": "2024-06-01T10:00:00.000000Z",
            },
        },
    }


def _configure_billing(configure):
    return configure(
        LEMONSQUEEZY_WEBHOOK_SECRET=WEBHOOK_SECRET,
        LEMONSQUEEZY_STORE_URL="luno.lemonsqueezy.com",
        LEMONSQUEEZY_PRO_VARIANT_ID="111",
        LEMONSQUEEZY_FAMILY_VARIANT_ID="222",
    )


def test_signature_verification():
    body, signature = _signed({"hello": "world"})
    assert billing.verify_webhook_signature(body, signature, WEBHOOK_SECRET)
    assert not billing.verify_webhook_signature(body, signature, "other-secret")
    assert not billing.verify_webhook_signature(body + b" ", signature, WEBHOOK_SECRET)
    assert not billing.verify_webhook_signature(body, "", WEBHOOK_SECRET)
    assert not billing.verify_webhook_signature(body, "\u00e9abc", WEBHOOK_SECRET)


def test_webhook_without_secret_configured(client):
    response = _post_webhook(client, {"meta": {"event_name": "order_created"}, "data": {"id": 1}})
    assert response.status_code == 500
    assert response.json() == {"error": "Webhook secret not configured"}


def test_webhook_rejects_bad_signature(client, configure):
    _configure_billing(configure)
    response = _post_webhook(client, {"meta": {"event_name": "order_created"}}, signature="deadbeef")
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid signature"}


def test_webhook_rejects_non_ascii_signature(client, configure):
    _configure_billing(configure)
    response = client.post(
        "/api/webhooks/lemon",
        content=b"{}",
        headers={"X-Signature": "\u00e9abc".encode("utf-8"), "Content-Type": "application/json"},
    )
    assert response.status_code == 401


def test_webhook_rejects_undecodable_body(client, configure):
    _configure_billing(configure)
    body = b"\x80{not json"
    signature = hmac.new(WEBHOOK_SECRET.encode("utf-8"), body, hashlib.sha256).hexdigest()
    response = client.post("/api/webhooks/lemon", content=body, headers={"X-Signature": signature})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid event format"}


def test_webhook_rejects_missing_event_name(client, configure):
    _configure_billing(configure)
    response = _post_webhook(client, {"meta": {}, "data": {"id": "x"}})
    assert response.status_code == 400


def test_subscription_lifecycle(client, session, configure, user):
    _configure_billing(configure)

    response = _post_webhook(client, _created_event(user["id"], variant_id="222"))
    assert response.status_code == 200
    assert response.json() == {"received": True}

    subscription = session.exec(
        select(UserSubscription).where(UserSubscription.user_id == user["id"])
    ).one()
    assert subscription.plan_type == "family"
    assert subscription.lemon_squeezy_subscription_id == "sub_1"
    assert subscription.lemon_squeezy_customer_id == "555"
    assert "4242" not in (subscription.secure_metadata or "")
    assert session.get(SubscriptionLimits, user["id"]).family_members_limit == 5

    data = billing.get_subscription_data(session, user["id"])
    assert data["payment_metadata"] == {"payment_method_last_four": "4242", "payment_method_brand": "visa"}

    data = client.get("/api/subscription", headers=user["headers"]).json()
    assert data["subscription"]["plan_type"] == "family"
    assert data["payment_method"] == {"payment_method_last_four": "4242", "payment_method_brand": "visa"}

    _post_webhook(client, {"meta": {"event_name": "subscription_payment_failed"}, "data": {"id": "sub_1"}})
    session.expire_all()
    assert session.get(UserSubscription, subscription.id).status == "past_due"

    _post_webhook(client, {"meta": {"event_name": "subscription_cancelled"}, "data": {"id": "sub_1"}})
    session.expire_all()
    cancelled = session.get(UserSubscription, subscription.id)
    assert cancelled.status == "canceled"
    assert cancelled.plan_type == "family"

    _post_webhook(client, {"meta": {"event_name": "subscription_expired"}, "data": {"id": "sub_1"}})
    session.expire_all()
    assert session.get(UserSubscription, subscription.id).plan_type == "free"
    assert session.get(SubscriptionLimits, user["id"]).transactions_limit == 50


def test_unhandled_event_is_acknowledged(client, configure):
    _configure_billing(configure)
    response = _post_webhook(client, {"meta": {"event_name": "license_key_created"}, "data": {"id": 1}})
    assert response.status_code == 200


def test_checkout_redirects(client, configure, user):
    response = client.get("/api/checkout?plan=gold", headers=user["headers"], follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"].endswith("/settings/billing?error=invalid_plan")

    response = client.get("/api/checkout?plan=pro", headers=user["headers"], follow_redirects=False)
    assert response.headers["location"].endswith("error=checkout_failed")

    _configure_billing(configure)
    response = client.get("/api/checkout?plan=pro", headers=user["headers"], follow_redirects=False)
    location = urlparse(response.headers["location"])
    assert location.netloc == "luno.lemonsqueezy.com"
    assert location.path == "/checkout/buy/111"
    query = parse_qs(location.query)
    assert query["checkout[email]"] == [user["email"]]
    assert query["checkout[custom][user_id]"] == [str(user["id"])]


def test_checkout_requires_login(client):
    response = client.get("/api/checkout?plan=pro", follow_redirects=False)
    assert response.status_code == 401


def test_portal_without_subscription(client, auth_headers):
    response = client.get("/api/billing/portal", headers=auth_headers)
    assert response.status_code == 404
