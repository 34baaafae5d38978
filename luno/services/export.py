"""
Transaction export as CSV or JSON.
"""
import csv
import io
from datetime import date
from typing import Any, Optional

from sqlmodel import Session, select

from luno.db.models import Account, Category, Transaction, utc_now
from luno.services.currency import plain_number

CSV_HEADERS = [
    "Date",
    "Description",
    "Type",
    "Amount",
    "Currency",
    "Account",
    "Category",
    "Payment Method",
    "Notes",
]


def fetch_export_rows(
    session: Session,
    user_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> list[tuple[Transaction, Optional[Account], Optional[Category]]]:
    """Transactions newest first, joined with their account and category."""
    statement = (
        select(Transaction, Account, Category)
        .join(Account, Account.id == Transaction.account_id, isouter=True)
        .join(Category, Category.id == Transaction.category_id, isouter=True)
        .where(Transaction.user_id == user_id)
    )
    if start_date:
        statement = statement.where(Transaction.transaction_date >= start_date)
    if end_date:
        statement = statement.where(Transaction.transaction_date <= end_date)
    statement = statement.order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
    return list(session.exec(statement).all())


def to_csv(rows: list[tuple[Transaction, Optional[Account], Optional[Category]]]) -> str:
    """Header line, then one fully quoted line per transaction."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for t, account, category in rows:
        writer.writerow([
            t.transaction_date.isoformat(),
            t.description or "",
            t.type,
            plain_number(t.amount) if t.amount is not None else "0",
            t.currency or "USD",
            account.name if account else "",
            category.name if category else "",
            t.payment_method or "",
            t.notes or "",
        ])
    body = buffer.getvalue().rstrip("\n")
    header = ",".join(CSV_HEADERS)
    return f"{header}\n{body}" if body else header


def to_json(rows: list[tuple[Transaction, Optional[Account], Optional[Category]]]) -> dict[str, Any]:
    transactions = []
    for t, account, category in rows:
        item = t.model_dump(mode="json")
        item["account"] = account.model_dump(mode="json") if account else None
        item["category"] = category.model_dump(mode="json") if category else None
        transactions.append(item)
    return {
        "transactions": transactions,
        "exported_at": utc_now().isoformat(),
        "count": len(transactions),
    }


def export_filename(today: Optional[date] = None) -> str:
    return f"transactions-{(today or date.today()).isoformat()}.csv"
