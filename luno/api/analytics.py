"""
Analytics, dashboard and spending breakdown endpoints.
"""
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Query

from luno.deps import CurrentUser, DBSession
from luno.schemas import AccountOut, BudgetOut, TransactionOut
from luno.services import analytics

router = APIRouter(prefix="/api", tags=["analytics"])


@router.get("/analytics")
async def get_analytics(
    user: CurrentUser,
    db: DBSession,
    range: str = Query("30d", pattern="^(7d|30d|90d|month|year)$"),
):
    """Summary, spending by category and the 30-day trend for a range."""
    return analytics.get_analytics(db, user.id, range)


@router.get("/analytics/spending")
async def get_spending(
    user: CurrentUser,
    db: DBSession,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    group_by: str = Query("category", pattern="^(category|day|week|month)$"),
):
    """Expense breakdown; the window defaults to the last 30 days."""
    end = end_date or date.today()
    start = start_date or end - timedelta(days=30)
    return analytics.get_spending_analytics(db, user.id, start, end, group_by)


@router.get("/dashboard")
async def get_dashboard(user: CurrentUser, db: DBSession):
    summary = analytics.get_dashboard_summary(db, user.id)
    return {
        **summary,
        "recent_transactions": [
            TransactionOut.model_validate(t).model_dump(mode="json") for t in summary["recent_transactions"]
        ],
        "accounts": [AccountOut.model_validate(a).model_dump(mode="json") for a in summary["accounts"]],
        "budgets": [BudgetOut.model_validate(b).model_dump(mode="json") for b in summary["budgets"]],
    }
