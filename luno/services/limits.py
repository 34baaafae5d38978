"""
Plan limits and feature gating.

Limit rows and usage counts go through the per-user cache in
`luno.services.cache`; writers invalidate it after mutations.
"""
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from luno.db.models import (
    Category,
    ExternalConnection,
    HouseholdMember,
    SubscriptionLimits,
    Transaction,
    UserSubscription,
    utc_now,
)
from luno.errors import LimitExceededError, ValidationFailedError
from luno.logger import get_logger
from luno.services import cache

logger = get_logger(__name__)

UNLIMITED = -1

PLAN_LIMITS: dict[str, dict[str, int]] = {
    "free": {
        "transactions_limit": 50,
        "categories_limit": 10,
        "bank_connections_limit": 1,
        "receipt_scans_limit": 0,
        "family_members_limit": 0,
    },
    "pro": {
        "transactions_limit": UNLIMITED,
        "categories_limit": UNLIMITED,
        "bank_connections_limit": 5,
        "receipt_scans_limit": 10,
        "family_members_limit": 0,
    },
    "family": {
        "transactions_limit": UNLIMITED,
        "categories_limit": UNLIMITED,
        "bank_connections_limit": 10,
        "receipt_scans_limit": 20,
        "family_members_limit": 5,
    },
}

FREE_SUBSCRIPTION = {"plan_type": "free", "status": "active"}


# === Cached reads ===

def get_subscription_limits(session: Session, user_id: int) -> Optional[dict[str, Any]]:
    """Limits row as a dict, or None when the user has none."""
    def load() -> Optional[dict[str, Any]]:
        row = session.get(SubscriptionLimits, user_id)
        return row.model_dump() if row else None

    return cache.cached(cache.LIMITS, user_id, load)


def get_cached_subscription(session: Session, user_id: int) -> Optional[dict[str, Any]]:
    def load() -> Optional[dict[str, Any]]:
        row = session.exec(
            select(UserSubscription).where(UserSubscription.user_id == user_id)
        ).first()
        if row is None:
            return None
        return row.model_dump(exclude={"secure_metadata"})

    return cache.cached(cache.SUBSCRIPTION, user_id, load)


def get_transaction_count(session: Session, user_id: int) -> int:
    return cache.cached(
        cache.TRANSACTION_COUNT,
        user_id,
        lambda: session.exec(
            select(func.count(Transaction.id)).where(Transaction.user_id == user_id)
        ).one(),
    )


def get_category_count(session: Session, user_id: int) -> int:
    return cache.cached(
        cache.CATEGORY_COUNT,
        user_id,
        lambda: session.exec(
            select(func.count(Category.id)).where(Category.user_id == user_id)
        ).one(),
    )


def get_bank_connection_count(session: Session, user_id: int) -> int:
    """Active bank connections only."""
    return cache.cached(
        cache.BANK_CONNECTION_COUNT,
        user_id,
        lambda: session.exec(
            select(func.count(ExternalConnection.id)).where(
                ExternalConnection.user_id == user_id,
                ExternalConnection.integration_type == "bank",
                ExternalConnection.status == "active",
            )
        ).one(),
    )


def _start_of_month(now: Optional[datetime] = None) -> datetime:
    now = now or utc_now()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def get_receipt_scan_count(session: Session, user_id: int, now: Optional[datetime] = None) -> int:
    """Transactions with a receipt created since the start of this month."""
    start = _start_of_month(now).astimezone(timezone.utc)
    return cache.cached(
        cache.RECEIPT_SCAN_COUNT,
        user_id,
        lambda: session.exec(
            select(func.count(Transaction.id)).where(
                Transaction.user_id == user_id,
                Transaction.receipt_url.is_not(None),
                Transaction.created_at >= start,
            )
        ).one(),
    )


def get_family_member_count(session: Session, user_id: int) -> int:
    return session.exec(
        select(func.count(HouseholdMember.id)).where(HouseholdMember.user_id == user_id)
    ).one()


# === Limit checks ===

def _within_limit(limit_value: Optional[int], fallback: int, count_fn) -> bool:
    if limit_value == UNLIMITED:
        return True
    limit = limit_value if limit_value is not None else fallback
    return count_fn() < limit


def check_transaction_limit(session: Session, user_id: int) -> bool:
    limits = get_subscription_limits(session, user_id)
    if not limits:
        return False
    return _within_limit(
        limits["transactions_limit"],
        PLAN_LIMITS["free"]["transactions_limit"],
        lambda: get_transaction_count(session, user_id),
    )


def check_category_limit(session: Session, user_id: int) -> bool:
    limits = get_subscription_limits(session, user_id)
    if not limits:
        return False
    return _within_limit(
        limits["categories_limit"],
        PLAN_LIMITS["free"]["categories_limit"],
        lambda: get_category_count(session, user_id),
    )


def check_bank_connection_limit(session: Session, user_id: int) -> bool:
    limits = get_subscription_limits(session, user_id)
    if not limits:
        return False
    return _within_limit(
        limits["bank_connections_limit"],
        PLAN_LIMITS["free"]["bank_connections_limit"],
        lambda: get_bank_connection_count(session, user_id),
    )


def check_receipt_scan_limit(session: Session, user_id: int) -> bool:
    limits = get_subscription_limits(session, user_id)
    if not limits or not limits["receipt_scans_limit"]:
        return False
    return _within_limit(
        limits["receipt_scans_limit"],
        0,
        lambda: get_receipt_scan_count(session, user_id),
    )


def check_family_member_limit(session: Session, user_id: int, household_member_count: int) -> bool:
    """Whether a household owned by this user can take another member."""
    limits = get_subscription_limits(session, user_id)
    if not limits:
        return False
    limit = limits["family_members_limit"]
    if limit == UNLIMITED:
        return True
    return household_member_count < (limit or 0)


def ensure_transaction_limit(session: Session, user_id: int) -> None:
    if not check_transaction_limit(session, user_id):
        limits = get_subscription_limits(session, user_id) or PLAN_LIMITS["free"]
        raise LimitExceededError("transactions", limits["transactions_limit"] or 50)


def ensure_category_limit(session: Session, user_id: int) -> None:
    if not check_category_limit(session, user_id):
        limits = get_subscription_limits(session, user_id) or PLAN_LIMITS["free"]
        raise LimitExceededError("categories", limits["categories_limit"] or 10)


def ensure_bank_connection_limit(session: Session, user_id: int) -> None:
    if not check_bank_connection_limit(session, user_id):
        limits = get_subscription_limits(session, user_id) or PLAN_LIMITS["free"]
        raise LimitExceededError("bank_connections", limits["bank_connections_limit"] or 1)


# === Subscription and features ===

def get_user_subscription(session: Session, user_id: int) -> dict[str, Any]:
    """User's subscription, defaulting to an active free plan."""
    return get_cached_subscription(session, user_id) or dict(FREE_SUBSCRIPTION)


def has_feature(session: Session, user_id: int, feature: str) -> bool:
    plan = get_user_subscription(session, user_id)["plan_type"]
    if feature in ("receipt_scanning", "investment_tracking"):
        return plan != "free"
    if feature == "family_sharing":
        return plan == "family"
    return False


def update_subscription_limits(session: Session, user_id: int, plan_type: str) -> SubscriptionLimits:
    """Upsert the user's limits row from the plan table."""
    if plan_type not in PLAN_LIMITS:
        raise ValidationFailedError(f"Unknown plan type: {plan_type}")

    row = session.get(SubscriptionLimits, user_id)
    if row is None:
        row = SubscriptionLimits(user_id=user_id)

    for field, value in PLAN_LIMITS[plan_type].items():
        setattr(row, field, value)
    row.updated_at = utc_now()

    session.add(row)
    session.commit()
    session.refresh(row)

    cache.invalidate_all_user_cache(user_id)
    logger.info("subscription_limits_updated", user_id=user_id, plan_type=plan_type)
    return row


# === Route payloads ===

LIMIT_FEATURES = ("transactions", "categories", "bank_connections", "receipt_scans")


def describe_limit(session: Session, user_id: int, feature: str) -> dict[str, Any]:
    """Usage against the limit for one feature."""
    if feature not in LIMIT_FEATURES:
        raise ValidationFailedError("Invalid feature")

    limits = get_subscription_limits(session, user_id) or {}

    if feature == "transactions":
        can_use = check_transaction_limit(session, user_id)
        current = get_transaction_count(session, user_id)
        limit = limits.get("transactions_limit") or 50
    elif feature == "categories":
        can_use = check_category_limit(session, user_id)
        current = get_category_count(session, user_id)
        limit = limits.get("categories_limit") or 10
    elif feature == "bank_connections":
        can_use = check_bank_connection_limit(session, user_id)
        current = get_bank_connection_count(session, user_id)
        limit = limits.get("bank_connections_limit") or 1
    else:
        can_use = check_receipt_scan_limit(session, user_id)
        current = get_receipt_scan_count(session, user_id)
        limit = limits.get("receipt_scans_limit") or 0

    return {
        "canUse": can_use,
        "current": current,
        "limit": "unlimited" if limit == UNLIMITED else limit,
        "isUnlimited": limit == UNLIMITED,
    }


def get_usage(session: Session, user_id: int) -> dict[str, int]:
    return {
        "transactions": get_transaction_count(session, user_id),
        "categories": get_category_count(session, user_id),
        "bankConnections": get_bank_connection_count(session, user_id),
        "receiptScans": get_receipt_scan_count(session, user_id),
        "familyMembers": get_family_member_count(session, user_id),
    }
