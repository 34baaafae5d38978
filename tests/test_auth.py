"""
Registration, login, tokens and the profile endpoints.
"""
from datetime import timedelta

from sqlmodel import select

from luno.db.models import NotificationPreference, SubscriptionLimits, UserSubscription
from luno.security.auth import create_access_token, hash_password, verify_password


def test_register_creates_free_plan(client, session):
    response = client.post(
        "/api/auth/register",
        json={"email": "Sam@Example.com", "password": "long-enough-pw", "full_name": "Sam"},
    )
    assert response.status_code == 201

    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["user"]["email"] == "sam@example.com"
    assert data["user"]["currency_preference"] == "USD"

    user_id = data["user"]["id"]
    subscription = session.exec(
        select(UserSubscription).where(UserSubscription.user_id == user_id)
    ).one()
    assert subscription.plan_type == "free"

    limits_row = session.get(SubscriptionLimits, user_id)
    assert limits_row.transactions_limit == 50
    assert limits_row.categories_limit == 10
    assert session.get(NotificationPreference, user_id) is not None


def test_register_duplicate_email(client, user):
    response = client.post(
        "/api/auth/register",
        json={"email": user["email"], "password": "another-password"},
    )
    assert response.status_code == 400
    assert "already exists" in response.json()["error"]


def test_register_validation(client):
    response = client.post("/api/auth/register", json={"email": "not-an-email", "password": "long-enough-pw"})
    assert response.status_code == 422

    response = client.post("/api/auth/register", json={"email": "a@b.co", "password": "short"})
    assert response.status_code == 422


def test_login(client, user):
    response = client.post(
        "/api/auth/login",
        json={"email": "ALEX@example.com", "password": "correct-horse-1"},
    )
    assert response.status_code == 200
    assert response.json()["user"]["id"] == user["id"]


def test_login_wrong_password(client, user):
    response = client.post(
        "/api/auth/login",
        json={"email": user["email"], "password": "wrong-password"},
    )
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid email or password"}


def test_me_and_update(client, user):
    response = client.get("/api/auth/me", headers=user["headers"])
    assert response.status_code == 200
    assert response.json()["full_name"] == "Alex Doe"

    response = client.patch(
        "/api/auth/me",
        headers=user["headers"],
        json={"currency_preference": "eur", "timezone": "Europe/Berlin"},
    )
    assert response.status_code == 200
    assert response.json()["currency_preference"] == "EUR"
    assert response.json()["timezone"] == "Europe/Berlin"


def test_invalid_and_expired_tokens(client, user):
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid token"}

    expired = create_access_token(user["id"], user["email"], expires_delta=timedelta(seconds=-5))
    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {expired}"})
    assert response.status_code == 401
    assert response.json() == {"error": "Token has expired"}


def test_token_for_deleted_user(client):
    token = create_access_token(4242, "ghost@example.com")
    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_password_hashing():
    hashed = hash_password("s3cret-value")
    assert hashed != "s3cret-value"
    assert verify_password("s3cret-value", hashed)
    assert not verify_password("other", hashed)
    assert not verify_password("s3cret-value", "not-a-bcrypt-hash")
