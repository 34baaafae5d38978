"""
Budget period arithmetic and progress against spending.
"""
import calendar
from datetime import date, timedelta
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta
from sqlmodel import Session, select

from luno.db.models import Budget, Category, Transaction


def derive_end_date(start_date: date, period: str) -> date:
    """
    Last day covered by a budget starting on `start_date`.

    weekly: start + 6 days
    monthly: last day of the start month
    yearly: start + 1 year - 1 day
    """
    if period == "weekly":
        return start_date + timedelta(days=6)
    if period == "yearly":
        return start_date + relativedelta(years=1) - timedelta(days=1)
    last_day = calendar.monthrange(start_date.year, start_date.month)[1]
    return start_date.replace(day=last_day)


def calculate_budget_progress(
    budget: Budget,
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
) -> dict[str, float | bool]:
    """
    Spending against a budget.

    A budget without a category covers every root category. Expense
    transactions count when their date falls within start_date..end_date
    (end_date falls back to start_date).
    """
    if budget.category_id is not None:
        category_ids = {budget.category_id}
    else:
        category_ids = {c.id for c in categories if c.parent_category_id is None}

    end = budget.end_date or budget.start_date
    spent = sum(
        abs(t.amount or 0)
        for t in transactions
        if t.type == "expense"
        and t.category_id in category_ids
        and budget.start_date <= t.transaction_date <= end
    )

    amount = budget.amount or 0
    percentage = min(spent / amount * 100, 100) if amount else 0.0

    return {
        "spent": spent,
        "remaining": amount - spent,
        "percentage": percentage,
        "is_over_budget": spent > amount,
    }


def get_budgets_with_progress(
    session: Session,
    user_id: int,
    active_only: bool = True,
    limit: Optional[int] = None,
) -> list[tuple[Budget, dict]]:
    """Budgets (newest first) paired with their progress."""
    statement = select(Budget).where(Budget.user_id == user_id)
    if active_only:
        statement = statement.where(Budget.is_active == True)  # noqa: E712
    statement = statement.order_by(Budget.created_at.desc())
    if limit is not None:
        statement = statement.limit(limit)
    budgets = session.exec(statement).all()
    if not budgets:
        return []

    earliest = min(b.start_date for b in budgets)
    latest = max(b.end_date or b.start_date for b in budgets)
    transactions = session.exec(
        select(Transaction).where(
            Transaction.user_id == user_id,
            Transaction.type == "expense",
            Transaction.transaction_date >= earliest,
            Transaction.transaction_date <= latest,
        )
    ).all()
    categories = session.exec(select(Category).where(Category.user_id == user_id)).all()

    return [(b, calculate_budget_progress(b, transactions, categories)) for b in budgets]
