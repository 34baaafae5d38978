"""
Small input validation helpers shared by schemas and routes.
"""
import re

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")

MAX_AMOUNT = 999_999_999


def validate_uuid(value: str) -> bool:
    return bool(_UUID_RE.match(value))


def validate_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email)) and len(email) <= 254


def validate_hex_color(value: str) -> bool:
    return bool(_HEX_COLOR_RE.match(value))


def sanitize_string(value: str, max_length: int = 1000) -> str:
    """Truncate, drop angle brackets, trim."""
    return value[:max_length].replace("<", "").replace(">", "").strip()
