"""
In-memory fixed-window rate limiting for API routes.

Single-process only; counters are lost on restart.
"""
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Request

from luno.errors import RateLimitedError
from luno.logger import get_logger

logger = get_logger(__name__)


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float
    limit: int


class RateLimiter:
    """Counts requests per identifier inside a fixed time window."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._store: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def check(self, identifier: str, limit: int = 100, window_seconds: float = 60) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            record = self._store.get(identifier)

            # No record or expired window
            if record is None or now > record[1]:
                reset_at = now + window_seconds
                self._store[identifier] = (1, reset_at)
                return RateLimitResult(True, limit - 1, reset_at, limit)

            count, reset_at = record
            if count >= limit:
                logger.warning("rate_limit_exceeded", identifier=identifier)
                return RateLimitResult(False, 0, reset_at, limit)

            self._store[identifier] = (count + 1, reset_at)
            return RateLimitResult(True, limit - count - 1, reset_at, limit)

    def clear(self, identifier: Optional[str] = None) -> None:
        with self._lock:
            if identifier is None:
                self._store.clear()
            else:
                self._store.pop(identifier, None)

    def cleanup(self) -> int:
        """Drop expired windows; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, (_, reset_at) in self._store.items() if now > reset_at]
            for key in expired:
                del self._store[key]
        return len(expired)


rate_limiter = RateLimiter()


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def rate_limit(limit: int, window_seconds: int = 60):
    """
    FastAPI dependency factory.

    Usage:
        @router.post("/session", dependencies=[Depends(rate_limit(10))])
    """
    def dependency(request: Request) -> None:
        identifier = f"{client_ip(request)}:{request.url.path}"
        result = rate_limiter.check(identifier, limit, window_seconds)
        if not result.allowed:
            retry_after = max(1, int(result.reset_at - time.time() + 0.999))
            raise RateLimitedError(retry_after=retry_after, limit=result.limit, reset_at=result.reset_at)

    return dependency
