"""
Shared fixtures: a throwaway SQLite database, an app client and helpers
for registering users and switching plans.
"""
import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="luno-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR}/test.db"
os.environ["JWT_SECRET"] = "test-secret-key-for-tokens"
os.environ["ENCRYPTION_KEY"] = "a" * 64

import pytest
from fastapi.testclient import TestClient
from sqlmodel import select

from luno.config import reload_settings
from luno.db.database import get_session_context, init_db, reset_engine
from luno.db.models import UserSubscription
from luno.deps import reset_chat_clients
from luno.main import app
from luno.security.rate_limit import rate_limiter
from luno.services import cache, limits

INTEGRATION_ENV = (
    "RESEND_API_KEY",
    "OPENAI_API_KEY",
    "GOOGLE_API_KEY",
    "COMPOSIO_API_KEY",
    "LEMONSQUEEZY_API_KEY",
    "LEMONSQUEEZY_WEBHOOK_SECRET",
    "LEMONSQUEEZY_STORE_URL",
    "LEMONSQUEEZY_PRO_VARIANT_ID",
    "LEMONSQUEEZY_FAMILY_VARIANT_ID",
    "NOTIFICATIONS_WEBHOOK_SECRET",
)


@pytest.fixture(autouse=True)
def fresh_state(monkeypatch):
    """Empty database, caches and limiter for every test."""
    for name in INTEGRATION_ENV:
        monkeypatch.delenv(name, raising=False)
    reload_settings()
    reset_engine()
    cache.clear_cache()
    rate_limiter.clear()
    reset_chat_clients()
    init_db(drop_all=True)

    yield

    app.dependency_overrides.clear()
    reset_engine()
    reload_settings()


@pytest.fixture
def configure(monkeypatch):
    """Set environment variables and reload settings."""
    def apply(**values):
        for key, value in values.items():
            monkeypatch.setenv(key, str(value))
        settings = reload_settings()
        cache.clear_cache()
        return settings

    return apply


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Capture outgoing email instead of calling Resend."""
    outbox = []

    async def fake_send_email(to, subject, html):
        outbox.append({"to": to, "subject": subject, "html": html})
        return {"success": True, "id": f"email_{len(outbox)}"}

    monkeypatch.setattr("luno.services.email.send_email", fake_send_email)
    return outbox


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def session():
    with get_session_context() as db:
        yield db


@pytest.fixture
def register_user(client):
    """Register a user and return {id, email, headers}."""
    def register(email="alex@example.com", password="correct-horse-1", full_name="Alex Doe"):
        response = client.post(
            "/api/auth/register",
            json={"email": email, "password": password, "full_name": full_name},
        )
        assert response.status_code == 201, response.text
        data = response.json()
        return {
            "id": data["user"]["id"],
            "email": data["user"]["email"],
            "headers": {"Authorization": f"Bearer {data['access_token']}"},
        }

    return register


@pytest.fixture
def user(register_user):
    return register_user()


@pytest.fixture
def auth_headers(user):
    return user["headers"]


@pytest.fixture
def set_plan(session):
    """Move a user onto a plan the way a billing webhook would."""
    def apply(user_id, plan_type):
        subscription = session.exec(
            select(UserSubscription).where(UserSubscription.user_id == user_id)
        ).one()
        subscription.plan_type = plan_type
        session.add(subscription)
        session.commit()
        limits.update_subscription_limits(session, user_id, plan_type)

    return apply
