"""
Service-layer exceptions.

Services raise these; the API layer turns them into `{"error": message}`
responses with the matching status code.
"""


class LunoError(Exception):
    """Base class for errors that map to an HTTP response."""

    status_code: int = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class ValidationFailedError(LunoError):
    status_code = 400


class ConflictError(LunoError):
    """Request conflicts with existing state (duplicate invite, email taken)."""
    status_code = 400


class AuthenticationError(LunoError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class PermissionDeniedError(LunoError):
    status_code = 403


class LimitExceededError(PermissionDeniedError):
    """Plan limit reached for a feature."""

    def __init__(self, feature: str, limit: int):
        super().__init__(
            f"You have reached your plan limit of {limit} {feature.replace('_', ' ')}. "
            "Upgrade your plan to add more."
        )
        self.feature = feature
        self.limit = limit


class NotFoundError(LunoError):
    status_code = 404


class RateLimitedError(LunoError):
    status_code = 429

    def __init__(self, retry_after: int, limit: int = 0, reset_at: float = 0.0):
        super().__init__("Too many requests. Please try again later.")
        self.retry_after = retry_after
        self.limit = limit
        self.reset_at = reset_at


class ServiceUnavailableError(LunoError):
    """An optional integration is not configured."""
    status_code = 503
