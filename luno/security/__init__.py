"""
Security helpers: auth tokens, encryption at rest, rate limiting, validation.
"""

from luno.security import auth, encryption, rate_limit, validation

__all__ = ["auth", "encryption", "rate_limit", "validation"]
