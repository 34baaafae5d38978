"""
Read-side aggregation for the analytics page, dashboard and chat tools.

All functions take plain lists of rows so they can be reused by the
assistant tools without extra queries.
"""
from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Iterable, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import func
from sqlmodel import Session, select

from luno.db.models import Account, Budget, Category, Notification, Transaction
from luno.errors import ValidationFailedError

RANGES = ("7d", "30d", "90d", "month", "year")
GROUP_BY = ("category", "day", "week", "month")
UNCATEGORIZED = "Uncategorized"


def resolve_range(range_key: str, today: Optional[date] = None) -> tuple[date, date]:
    """Turn a range key into an inclusive (start, end) date pair."""
    today = today or date.today()
    if range_key == "7d":
        return today - timedelta(days=7), today
    if range_key == "30d":
        return today - timedelta(days=30), today
    if range_key == "90d":
        return today - timedelta(days=90), today
    if range_key == "month":
        return today.replace(day=1), today
    if range_key == "year":
        return today - relativedelta(months=12), today
    raise ValidationFailedError(f"Invalid range: {range_key}")


def summarize(transactions: Iterable[Transaction]) -> dict[str, float]:
    income = 0.0
    expenses = 0.0
    for t in transactions:
        if t.type == "income":
            income += t.amount or 0
        elif t.type == "expense":
            expenses += abs(t.amount or 0)
    return {
        "total_income": income,
        "total_expenses": expenses,
        "net": income - expenses,
    }


def _category_names(categories: Iterable[Category]) -> dict[int, str]:
    return {c.id: c.name for c in categories}


def spending_by_category(
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
) -> list[dict[str, Any]]:
    """Expense totals per category, largest first, with share of total."""
    names = _category_names(categories)
    totals: dict[str, float] = defaultdict(float)
    for t in transactions:
        if t.type != "expense":
            continue
        name = names.get(t.category_id, UNCATEGORIZED) if t.category_id else UNCATEGORIZED
        totals[name] += abs(t.amount or 0)

    total_expenses = sum(totals.values())
    rows = [
        {
            "category": name,
            "amount": amount,
            "percentage": (amount / total_expenses * 100) if total_expenses > 0 else 0,
        }
        for name, amount in totals.items()
        if amount > 0
    ]
    rows.sort(key=lambda r: r["amount"], reverse=True)
    return rows


def daily_trend(
    transactions: Iterable[Transaction],
    today: Optional[date] = None,
    days: int = 30,
) -> list[dict[str, Any]]:
    """One point per day for the last `days` days, oldest first."""
    today = today or date.today()
    income: dict[date, float] = defaultdict(float)
    expenses: dict[date, float] = defaultdict(float)
    for t in transactions:
        if t.type == "income":
            income[t.transaction_date] += t.amount or 0
        elif t.type == "expense":
            expenses[t.transaction_date] += abs(t.amount or 0)

    points = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        points.append({
            "date": day.isoformat(),
            "income": income[day],
            "expenses": expenses[day],
        })
    return points


def _group_key(t: Transaction, group_by: str, names: dict[int, str]) -> str:
    if group_by == "category":
        return names.get(t.category_id, UNCATEGORIZED) if t.category_id else UNCATEGORIZED
    if group_by == "day":
        return t.transaction_date.isoformat()
    if group_by == "week":
        year, week, _ = t.transaction_date.isocalendar()
        return f"{year}-W{week:02d}"
    return t.transaction_date.strftime("%Y-%m")


def grouped_spending(
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
    group_by: str = "category",
) -> list[dict[str, Any]]:
    """Expense totals grouped by category, day, ISO week or month."""
    if group_by not in GROUP_BY:
        raise ValidationFailedError(f"Invalid groupBy: {group_by}")

    names = _category_names(categories)
    totals: dict[str, float] = defaultdict(float)
    for t in transactions:
        if t.type == "expense":
            totals[_group_key(t, group_by, names)] += abs(t.amount or 0)

    total = sum(totals.values())
    rows = [
        {
            "key": key,
            "amount": amount,
            "percentage": (amount / total * 100) if total > 0 else 0,
        }
        for key, amount in totals.items()
    ]
    if group_by == "category":
        rows.sort(key=lambda r: r["amount"], reverse=True)
    else:
        rows.sort(key=lambda r: r["key"])
    return rows


# === Queries ===

def _transactions_between(session: Session, user_id: int, start: date, end: date, type_: Optional[str] = None):
    statement = select(Transaction).where(
        Transaction.user_id == user_id,
        Transaction.transaction_date >= start,
        Transaction.transaction_date <= end,
    )
    if type_:
        statement = statement.where(Transaction.type == type_)
    return session.exec(statement.order_by(Transaction.transaction_date.desc())).all()


def get_analytics(session: Session, user_id: int, range_key: str = "30d", today: Optional[date] = None) -> dict[str, Any]:
    """Payload for GET /api/analytics."""
    today = today or date.today()
    start, end = resolve_range(range_key, today)

    transactions = _transactions_between(session, user_id, start, end)
    categories = session.exec(select(Category).where(Category.user_id == user_id)).all()

    trend_start = today - timedelta(days=29)
    trend_source = (
        transactions if trend_start >= start
        else _transactions_between(session, user_id, trend_start, today)
    )

    return {
        "range": range_key,
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "summary": summarize(transactions),
        "spending_by_category": spending_by_category(transactions, categories),
        "daily_trend": daily_trend(trend_source, today),
        "transaction_count": len(transactions),
    }


def get_spending_analytics(
    session: Session,
    user_id: int,
    start: date,
    end: date,
    group_by: str = "category",
) -> dict[str, Any]:
    """Expense breakdown over an explicit date window."""
    expenses = _transactions_between(session, user_id, start, end, "expense")
    categories = session.exec(select(Category).where(Category.user_id == user_id)).all()
    breakdown = grouped_spending(expenses, categories, group_by)

    result: dict[str, Any] = {
        "totalExpenses": sum(abs(t.amount or 0) for t in expenses),
        "transactionCount": len(expenses),
        "period": {"start": start.isoformat(), "end": end.isoformat()},
        "groupBy": group_by,
    }
    if group_by == "category":
        result["categoryBreakdown"] = [
            {"category": r["key"], "amount": r["amount"], "percentage": r["percentage"]}
            for r in breakdown
        ]
    else:
        result["breakdown"] = breakdown
    return result


def get_dashboard_summary(session: Session, user_id: int, today: Optional[date] = None) -> dict[str, Any]:
    """Month-to-date totals plus the widgets shown on the dashboard."""
    today = today or date.today()
    month_start = today.replace(day=1)

    month_transactions = session.exec(
        select(Transaction)
        .where(Transaction.user_id == user_id, Transaction.transaction_date >= month_start)
        .order_by(Transaction.transaction_date.desc(), Transaction.created_at.desc())
    ).all()
    accounts = session.exec(
        select(Account).where(Account.user_id == user_id).order_by(Account.name)
    ).all()
    budgets = session.exec(
        select(Budget)
        .where(Budget.user_id == user_id)
        .order_by(Budget.created_at.desc())
        .limit(3)
    ).all()
    unread = session.exec(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.is_read == False,  # noqa: E712
        )
    ).one()

    totals = summarize(month_transactions)
    return {
        "total_income": totals["total_income"],
        "total_expenses": totals["total_expenses"],
        "account_balance": sum(a.balance or 0 for a in accounts),
        "recent_transactions": month_transactions[:5],
        "accounts": accounts,
        "budgets": budgets,
        "unread_notifications": unread,
    }
