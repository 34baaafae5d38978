"""
Analytics aggregation, the dashboard and transaction export.
"""
import csv
import io
from datetime import date, timedelta

import pytest

from luno.db.models import Category, Transaction
from luno.errors import ValidationFailedError
from luno.services import analytics
from luno.services.currency import format_currency, plain_number


def _tx(amount, day, type_="expense", category_id=None):
    return Transaction(user_id=1, amount=amount, type=type_, description="t", transaction_date=day, category_id=category_id)


def test_resolve_range():
    today = date(2024, 3, 31)
    assert analytics.resolve_range("7d", today) == (date(2024, 3, 24), today)
    assert analytics.resolve_range("month", today) == (date(2024, 3, 1), today)
    assert analytics.resolve_range("year", today) == (date(2023, 3, 31), today)
    with pytest.raises(ValidationFailedError):
        analytics.resolve_range("forever", today)


def test_spending_by_category_sorted_with_share():
    categories = [Category(id=1, user_id=1, name="Rent"), Category(id=2, user_id=1, name="Food")]
    transactions = [
        _tx(750, date(2024, 3, 1), category_id=1),
        _tx(150, date(2024, 3, 2), category_id=2),
        _tx(100, date(2024, 3, 2)),
        _tx(3000, date(2024, 3, 1), type_="income"),
    ]

    rows = analytics.spending_by_category(transactions, categories)
    assert [r["category"] for r in rows] == ["Rent", "Food", "Uncategorized"]
    assert rows[0]["percentage"] == 75.0

    assert analytics.summarize(transactions) == {"total_income": 3000, "total_expenses": 1000, "net": 2000}


def test_daily_trend_covers_every_day():
    today = date(2024, 3, 31)
    points = analytics.daily_trend([_tx(20, today), _tx(5, today - timedelta(days=40))], today)

    assert len(points) == 30
    assert points[0]["date"] == "2024-03-02"
    assert points[-1] == {"date": "2024-03-31", "income": 0, "expenses": 20}


def test_grouped_spending_by_week():
    transactions = [_tx(10, date(2024, 1, 1)), _tx(15, date(2024, 1, 3)), _tx(5, date(2024, 1, 8))]
    rows = analytics.grouped_spending(transactions, [], "week")
    assert rows == [
        {"key": "2024-W01", "amount": 25, "percentage": pytest.approx(83.333, rel=1e-3)},
        {"key": "2024-W02", "amount": 5, "percentage": pytest.approx(16.667, rel=1e-3)},
    ]


def test_analytics_endpoint(client, auth_headers):
    today = date.today()
    client.post("/api/transactions", headers=auth_headers, json={
        "description": "Pay", "type": "income", "amount": 2500, "transaction_date": today.isoformat(),
    })
    client.post("/api/transactions", headers=auth_headers, json={
        "description": "Shop", "type": "expense", "amount": 100, "transaction_date": today.isoformat(),
    })

    data = client.get("/api/analytics?range=7d", headers=auth_headers).json()
    assert data["summary"] == {"total_income": 2500, "total_expenses": 100, "net": 2400}
    assert data["spending_by_category"][0]["category"] == "Uncategorized"
    assert len(data["daily_trend"]) == 30
    assert data["transaction_count"] == 2

    assert client.get("/api/analytics?range=decade", headers=auth_headers).status_code == 422


def test_spending_endpoint(client, auth_headers):
    client.post("/api/transactions", headers=auth_headers, json={
        "description": "Shop", "type": "expense", "amount": 40, "transaction_date": "2024-02-10",
    })

    data = client.get(
        "/api/analytics/spending?start_date=2024-02-01&end_date=2024-02-29&group_by=month",
        headers=auth_headers,
    ).json()
    assert data["totalExpenses"] == 40
    assert data["breakdown"] == [{"key": "2024-02", "amount": 40, "percentage": 100.0}]


def test_dashboard(client, auth_headers):
    client.post("/api/accounts", headers=auth_headers, json={"name": "Main", "type": "checking", "balance": 900})
    client.post("/api/transactions", headers=auth_headers, json={
        "description": "Lunch", "type": "expense", "amount": 12, "transaction_date": date.today().isoformat(),
    })

    data = client.get("/api/dashboard", headers=auth_headers).json()
    assert data["total_expenses"] == 12
    assert data["account_balance"] == 900
    assert data["recent_transactions"][0]["description"] == "Lunch"
    assert data["accounts"][0]["name"] == "Main"
    assert data["budgets"] == []
    assert data["unread_notifications"] == 0


def test_export_csv(client, auth_headers):
    account = client.post("/api/accounts", headers=auth_headers, json={"name": "Main", "type": "checking"}).json()
    client.post("/api/transactions", headers=auth_headers, json={
        "description": 'Dinner "La Piazza", Rome',
        "type": "expense",
        "amount": 48.5,
        "account_id": account["id"],
        "transaction_date": "2024-05-02",
    })

    response = client.get("/api/export/transactions", headers=auth_headers)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="transactions-' in response.headers["content-disposition"]

    rows = list(csv.reader(io.StringIO(response.text)))
    assert rows[0][:4] == ["Date", "Description", "Type", "Amount"]
    assert rows[1][:6] == ["2024-05-02", 'Dinner "La Piazza", Rome', "expense", "48.5", "USD", "Main"]


def test_export_json(client, auth_headers):
    client.post("/api/transactions", headers=auth_headers, json={
        "description": "Gym", "type": "expense", "amount": 30, "transaction_date": "2024-05-02",
    })

    data = client.get("/api/export/transactions?format=json", headers=auth_headers).json()
    assert data["count"] == 1
    assert data["transactions"][0]["description"] == "Gym"
    assert data["transactions"][0]["account"] is None


def test_currency_formatting():
    assert format_currency(1234.5, "USD") == "$1,234.50"
    assert format_currency(10, "gbp") == "£10.00"
    assert plain_number(12.0) == "12"
    assert plain_number(12.5) == "12.5"
