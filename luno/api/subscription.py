"""
Plan limits, usage counts and the user's subscription.
"""
from typing import Optional

from fastapi import APIRouter, Query

from luno.deps import CurrentUser, DBSession
from luno.errors import ValidationFailedError
from luno.services import billing, limits

router = APIRouter(prefix="/api", tags=["subscription"])


@router.get("/check-limits")
async def check_limits(user: CurrentUser, db: DBSession, feature: Optional[str] = Query(None)):
    """
    Usage against the plan limit for one feature.

    feature: transactions | categories | bank_connections | receipt_scans
    """
    if not feature:
        raise ValidationFailedError("Feature parameter required")
    return limits.describe_limit(db, user.id, feature)


@router.get("/usage")
async def get_usage(user: CurrentUser, db: DBSession):
    return limits.get_usage(db, user.id)


@router.get("/subscription")
async def get_subscription(user: CurrentUser, db: DBSession):
    stored = billing.get_subscription_data(db, user.id)
    return {
        "subscription": limits.get_user_subscription(db, user.id),
        "limits": limits.get_subscription_limits(db, user.id),
        "payment_method": stored["payment_metadata"] if stored else None,
    }
