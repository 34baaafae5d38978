"""
Per-user memoisation of limit and count queries.

Entries are keyed by ``(kind, user_id)`` and expire after CACHE_TTL_SECONDS.
Mutations call the matching ``invalidate_*`` function so the next read
goes back to the database.
"""
import threading
from typing import Any, Callable, Optional

from cachetools import TTLCache

from luno.config import get_settings
from luno.logger import get_logger

logger = get_logger(__name__)

LIMITS = "limits"
SUBSCRIPTION = "subscription"
TRANSACTION_COUNT = "transaction_count"
CATEGORY_COUNT = "category_count"
BANK_CONNECTION_COUNT = "bank_connection_count"
RECEIPT_SCAN_COUNT = "receipt_scan_count"

_KINDS = (
    LIMITS,
    SUBSCRIPTION,
    TRANSACTION_COUNT,
    CATEGORY_COUNT,
    BANK_CONNECTION_COUNT,
    RECEIPT_SCAN_COUNT,
)

_cache: Optional[TTLCache] = None
_lock = threading.RLock()


def _get_cache() -> TTLCache:
    global _cache
    if _cache is None:
        settings = get_settings()
        _cache = TTLCache(maxsize=settings.CACHE_MAX_ENTRIES, ttl=settings.CACHE_TTL_SECONDS)
    return _cache


def cached(kind: str, user_id: int, loader: Callable[[], Any]) -> Any:
    """Return the cached value for (kind, user_id), loading it on a miss."""
    key = (kind, user_id)
    with _lock:
        cache = _get_cache()
        if key in cache:
            return cache[key]

    value = loader()

    with _lock:
        _get_cache()[key] = value
    return value


def _invalidate(user_id: int, *kinds: str) -> None:
    with _lock:
        cache = _get_cache()
        for kind in kinds:
            cache.pop((kind, user_id), None)
    logger.debug("cache_invalidated", user_id=user_id, kinds=list(kinds))


def invalidate_subscription_cache(user_id: int) -> None:
    _invalidate(user_id, LIMITS, SUBSCRIPTION)


def invalidate_transaction_count_cache(user_id: int) -> None:
    _invalidate(user_id, TRANSACTION_COUNT, RECEIPT_SCAN_COUNT)


def invalidate_category_cache(user_id: int) -> None:
    _invalidate(user_id, CATEGORY_COUNT)


def invalidate_bank_connection_cache(user_id: int) -> None:
    _invalidate(user_id, BANK_CONNECTION_COUNT)


def invalidate_all_user_cache(user_id: int) -> None:
    _invalidate(user_id, *_KINDS)


def clear_cache() -> None:
    """Drop every entry and rebuild from current settings."""
    global _cache
    with _lock:
        _cache = None
