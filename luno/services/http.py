"""
Outbound HTTP with retries for third-party APIs (Lemon Squeezy, Composio).
"""
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from luno.config import get_settings
from luno.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=10.0)


def _is_retryable(exc: BaseException) -> bool:
    """Network errors and 5xx responses are worth another attempt."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)


async def request_with_retry(method: str, url: str, **kwargs: Any) -> httpx.Response:
    """
    Send a request, retrying with exponential backoff.

    Raises:
        httpx.HTTPStatusError: non-2xx response after the last attempt
        httpx.TransportError: connection failure after the last attempt
    """
    settings = get_settings()
    retrying = AsyncRetrying(
        stop=stop_after_attempt(settings.HTTP_RETRY_MAX_ATTEMPTS),
        wait=wait_exponential(
            multiplier=1,
            min=settings.HTTP_RETRY_WAIT_MIN_SECONDS,
            max=settings.HTTP_RETRY_WAIT_MAX_SECONDS,
        ),
        retry=retry_if_exception(_is_retryable),
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            if attempt.retry_state.attempt_number > 1:
                logger.warning(
                    "http_retry",
                    method=method,
                    url=url,
                    attempt=attempt.retry_state.attempt_number,
                )
            async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT, follow_redirects=True) as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
    return response
