"""
Encryption at rest, rate limiting and input validation helpers.
"""
import pytest

from luno.config import reload_settings
from luno.security import encryption
from luno.security.rate_limit import RateLimiter
from luno.security.validation import sanitize_string, validate_email, validate_hex_color, validate_uuid


def test_encrypt_round_trip():
    token = encryption.encrypt("card ending 4242")
    iv, tag, ciphertext = token.split(":")
    assert len(bytes.fromhex(iv)) == encryption.IV_LENGTH
    assert len(bytes.fromhex(tag)) == encryption.TAG_LENGTH
    assert "4242" not in token

    assert encryption.decrypt(token) == "card ending 4242"
    assert encryption.encrypt("same") != encryption.encrypt("same")


def test_encrypt_json_round_trip():
    payload = {"access_token": "tok_123", "scopes": ["read", "write"]}
    assert encryption.decrypt_json(encryption.encrypt_json(payload)) == payload


def test_decrypt_rejects_tampering():
    iv, tag, ciphertext = encryption.encrypt("secret").split(":")
    flipped = format(int(ciphertext[:2], 16) ^ 0xFF, "02x") + ciphertext[2:]

    with pytest.raises(encryption.EncryptionError):
        encryption.decrypt(f"{iv}:{tag}:{flipped}")
    with pytest.raises(encryption.EncryptionError):
        encryption.decrypt("not-encrypted")


def test_passphrase_key_is_derived(configure):
    configure(ENCRYPTION_KEY="correct horse battery staple")
    key = encryption.get_encryption_key()
    assert len(key) == encryption.KEY_LENGTH
    assert encryption.decrypt(encryption.encrypt("hello")) == "hello"


def test_missing_key(monkeypatch):
    monkeypatch.delenv("ENCRYPTION_KEY")
    reload_settings()
    with pytest.raises(encryption.EncryptionError):
        encryption.encrypt("data")


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_rate_limiter_fixed_window():
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)

    results = [limiter.check("1.2.3.4:/api/x", limit=3, window_seconds=60) for _ in range(4)]
    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]
    assert results[0].reset_at == 1060.0

    clock.now = 1061.0
    assert limiter.check("1.2.3.4:/api/x", limit=3, window_seconds=60).allowed
    assert limiter.check("5.6.7.8:/api/x", limit=3, window_seconds=60).remaining == 2


def test_rate_limiter_cleanup():
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)
    limiter.check("a", window_seconds=10)
    limiter.check("b", window_seconds=100)

    clock.now = 1050.0
    assert limiter.cleanup() == 1
    assert limiter.cleanup() == 0


def test_rate_limited_route_headers(client, auth_headers):
    for _ in range(20):
        assert client.get("/api/tool-router/connections", headers=auth_headers).status_code == 200

    response = client.get("/api/tool-router/connections", headers=auth_headers)
    assert response.status_code == 429
    assert response.json()["error"] == "Too many requests. Please try again later."
    assert int(response.headers["Retry-After"]) >= 1
    assert response.headers["X-RateLimit-Limit"] == "20"
    assert response.headers["X-RateLimit-Remaining"] == "0"


def test_validation_helpers():
    assert validate_email("a.b@example.co.uk")
    assert not validate_email("a b@example.com")
    assert validate_hex_color("#A0b1C2")
    assert not validate_hex_color("#abc")
    assert validate_uuid("123e4567-e89b-42d3-a456-426614174000")
    assert not validate_uuid("123")
    assert sanitize_string("  <b>hi</b>  ") == "bhi/b"
    assert sanitize_string("abcdef", max_length=3) == "abc"
