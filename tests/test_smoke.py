"""
Smoke tests for basic application functionality.
"""
import os

from luno.config import get_settings, reload_settings


def test_health_check(client):
    """Test health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200

    data = response.json()
    assert "status" in data
    assert "service" in data
    assert data["service"] == "luno-api"


def test_health_check_structure(client):
    """Test health check response structure."""
    response = client.get("/health")
    assert response.status_code == 200

    data = response.json()

    assert "timestamp" in data
    assert data["database"]["status"] == "healthy"
    assert data["database"]["counts"]["users"] == 0
    assert set(data["integrations"]) == {"email", "billing", "chat", "tool_router"}


def test_health_degraded_without_chat_provider(client):
    response = client.get("/health")
    data = response.json()

    assert data["integrations"]["chat"] is False
    assert data["status"] == "degraded"


def test_health_ok_with_chat_provider(client, configure):
    configure(GOOGLE_API_KEY="test-google-key")

    data = client.get("/health").json()
    assert data["integrations"]["chat"] is True
    assert data["status"] == "ok"


def test_config_loads():
    """Test that configuration loads correctly."""
    settings = get_settings()

    assert settings is not None
    assert settings.DATABASE_URL.startswith("sqlite")
    assert settings.DEFAULT_CHAT_PROVIDER == "google"
    assert settings.email_configured is False


def test_config_store_url_is_bare_host(configure):
    settings = configure(LEMONSQUEEZY_STORE_URL="https://luno.lemonsqueezy.com/")
    assert settings.LEMONSQUEEZY_STORE_URL == "luno.lemonsqueezy.com"


def test_config_chat_disabled_without_keys():
    """Test that chat is reported unavailable without provider keys."""
    old_key = os.environ.pop("OPENAI_API_KEY", None)

    settings = reload_settings()
    assert not settings.chat_configured

    if old_key:
        os.environ["OPENAI_API_KEY"] = old_key
    reload_settings()


def test_unauthenticated_requests_rejected(client):
    response = client.get("/api/accounts")
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_pagination_defaults(client, auth_headers):
    """Test pagination defaults."""
    response = client.get("/api/transactions", headers=auth_headers)
    assert response.status_code == 200

    data = response.json()
    assert data["items"] == []
    assert data["total"] == 0
    assert data["limit"] == 50
    assert data["offset"] == 0


def test_pagination_custom(client, auth_headers):
    """Test custom pagination parameters."""
    response = client.get("/api/transactions?limit=10&offset=5", headers=auth_headers)
    assert response.status_code == 200

    data = response.json()
    assert data["limit"] == 10
    assert data["offset"] == 5


def test_get_nonexistent_records(client, auth_headers):
    for path in ("/api/accounts/99999", "/api/transactions/99999", "/api/budgets/99999", "/api/goals/99999"):
        response = client.get(path, headers=auth_headers)
        assert response.status_code == 404
