"""
Budget periods and progress.
"""
from datetime import date

import pytest

from luno.db.models import Budget, Category, Transaction
from luno.services.budgets import calculate_budget_progress, derive_end_date


@pytest.mark.parametrize(
    "start, period, expected",
    [
        (date(2024, 3, 4), "weekly", date(2024, 3, 10)),
        (date(2024, 2, 10), "monthly", date(2024, 2, 29)),
        (date(2023, 2, 1), "monthly", date(2023, 2, 28)),
        (date(2024, 1, 15), "yearly", date(2025, 1, 14)),
        (date(2024, 2, 29), "yearly", date(2025, 2, 27)),
    ],
)
def test_derive_end_date(start, period, expected):
    assert derive_end_date(start, period) == expected


def _tx(amount, day, category_id, type_="expense"):
    return Transaction(
        user_id=1,
        amount=amount,
        type=type_,
        description="t",
        transaction_date=day,
        category_id=category_id,
    )


def test_progress_for_category_budget():
    budget = Budget(user_id=1, amount=200, category_id=1, start_date=date(2024, 5, 1), end_date=date(2024, 5, 31))
    transactions = [
        _tx(120, date(2024, 5, 3), 1),
        _tx(-30, date(2024, 5, 20), 1),
        _tx(999, date(2024, 6, 1), 1),
        _tx(50, date(2024, 5, 4), 2),
    ]

    progress = calculate_budget_progress(budget, transactions, [])
    assert progress == {"spent": 150, "remaining": 50, "percentage": 75.0, "is_over_budget": False}


def test_progress_without_category_covers_root_categories():
    categories = [
        Category(id=1, user_id=1, name="Food"),
        Category(id=2, user_id=1, name="Takeaway", parent_category_id=1),
        Category(id=3, user_id=1, name="Travel"),
    ]
    budget = Budget(user_id=1, amount=100, start_date=date(2024, 5, 1), end_date=date(2024, 5, 31))
    transactions = [
        _tx(60, date(2024, 5, 2), 1),
        _tx(40, date(2024, 5, 2), 2),
        _tx(70, date(2024, 5, 9), 3),
        _tx(10, date(2024, 5, 9), None),
    ]

    progress = calculate_budget_progress(budget, transactions, categories)
    assert progress["spent"] == 130
    assert progress["remaining"] == -30
    assert progress["percentage"] == 100
    assert progress["is_over_budget"] is True


def test_create_budget_derives_end_date(client, auth_headers):
    response = client.post(
        "/api/budgets",
        headers=auth_headers,
        json={"name": "Groceries", "amount": 400, "period": "monthly", "start_date": "2024-04-10"},
    )
    assert response.status_code == 201
    assert response.json()["end_date"] == "2024-04-30"

    budget_id = response.json()["id"]
    response = client.patch(f"/api/budgets/{budget_id}", headers=auth_headers, json={"period": "weekly"})
    assert response.json()["end_date"] == "2024-04-16"


def test_create_budget_rejects_end_before_start(client, auth_headers):
    response = client.post(
        "/api/budgets",
        headers=auth_headers,
        json={"amount": 100, "start_date": "2024-04-10", "end_date": "2024-04-01"},
    )
    assert response.status_code == 400


def test_budget_progress_endpoint(client, auth_headers):
    category = client.post("/api/categories", headers=auth_headers, json={"name": "Dining"}).json()
    client.post(
        "/api/budgets",
        headers=auth_headers,
        json={"amount": 100, "category_id": category["id"], "start_date": "2024-04-01"},
    )
    client.post(
        "/api/budgets",
        headers=auth_headers,
        json={"amount": 100, "start_date": "2024-04-01", "is_active": False},
    )
    client.post(
        "/api/transactions",
        headers=auth_headers,
        json={
            "description": "Dinner",
            "type": "expense",
            "amount": 45,
            "category_id": category["id"],
            "transaction_date": "2024-04-12",
        },
    )

    data = client.get("/api/budgets/progress", headers=auth_headers).json()
    assert len(data) == 1
    assert data[0]["progress"] == {"spent": 45, "remaining": 55, "percentage": 45.0, "is_over_budget": False}

    assert len(client.get("/api/budgets", headers=auth_headers).json()) == 2
    assert len(client.get("/api/budgets?active_only=true", headers=auth_headers).json()) == 1


def test_progress_ignores_income():
    budget = Budget(user_id=1, amount=500, start_date=date(2024, 5, 1), end_date=date(2024, 5, 31))
    categories = [Category(id=1, user_id=1, name="Salary", type="income")]
    transactions = [_tx(3000, date(2024, 5, 15), 1, type_="income")]

    progress = calculate_budget_progress(budget, transactions, categories)
    assert progress == {"spent": 0, "remaining": 500, "percentage": 0.0, "is_over_budget": False}


def test_progress_endpoint_ignores_income(client, auth_headers):
    salary = client.post("/api/categories", headers=auth_headers, json={"name": "Salary", "type": "income"}).json()
    client.post("/api/budgets", headers=auth_headers, json={"amount": 500, "start_date": "2024-05-01"})
    client.post(
        "/api/transactions",
        headers=auth_headers,
        json={
            "description": "Payroll",
            "type": "income",
            "amount": 3000,
            "category_id": salary["id"],
            "transaction_date": "2024-05-15",
        },
    )

    data = client.get("/api/budgets/progress", headers=auth_headers).json()
    assert data[0]["progress"]["spent"] == 0
    assert data[0]["progress"]["is_over_budget"] is False


def test_patch_budget_rejects_null_start_date(client, auth_headers):
    budget = client.post("/api/budgets", headers=auth_headers, json={"amount": 100, "start_date": "2024-04-01"}).json()

    response = client.patch(f"/api/budgets/{budget['id']}", headers=auth_headers, json={"start_date": None})
    assert response.status_code == 422

    response = client.patch(f"/api/budgets/{budget['id']}", headers=auth_headers, json={"end_date": None})
    assert response.status_code == 200
