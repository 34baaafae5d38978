"""
Ownership checks and writes shared by the REST routes and the assistant tools.
"""
from typing import Any, Optional, Type, TypeVar

from sqlmodel import Session, SQLModel, select

from luno.db.models import Account, Budget, Category, Goal, Transaction, utc_now
from luno.errors import NotFoundError, ValidationFailedError
from luno.logger import get_logger
from luno.services import cache, limits
from luno.services.notifications import days_until_due

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=SQLModel)


def get_owned(session: Session, model: Type[ModelT], record_id: int, user_id: int, label: str) -> ModelT:
    """Fetch a row the user owns; anything else is a 404."""
    record = session.get(model, record_id)
    if record is None or getattr(record, "user_id", None) != user_id:
        raise NotFoundError(f"{label} not found")
    return record


def ensure_references(
    session: Session,
    user_id: int,
    account_id: Optional[int] = None,
    category_id: Optional[int] = None,
) -> None:
    """Referenced account and category must belong to the caller."""
    if account_id is not None:
        account = session.get(Account, account_id)
        if account is None or account.user_id != user_id:
            raise ValidationFailedError("Account not found")
    if category_id is not None:
        category = session.get(Category, category_id)
        if category is None or category.user_id != user_id:
            raise ValidationFailedError("Category not found")


def goal_progress(goal: Goal) -> dict[str, Any]:
    """progress (rounded %), remaining and days_remaining for a goal."""
    current = goal.current_amount or 0
    target = goal.target_amount or 0
    return {
        "progress": round(current / target * 100) if target else 0,
        "remaining": target - current,
        "days_remaining": days_until_due(goal.deadline, utc_now()) if goal.deadline else None,
    }


def apply_changes(record: SQLModel, changes: dict[str, Any]) -> None:
    for field, value in changes.items():
        setattr(record, field, value)
    if hasattr(record, "updated_at"):
        record.updated_at = utc_now()


# === Transactions ===

def create_transaction(session: Session, user_id: int, data: dict[str, Any]) -> Transaction:
    """
    Insert a transaction after the plan limit and reference checks.

    Raises:
        LimitExceededError: transaction quota reached
        ValidationFailedError: account or category not owned by the user
    """
    limits.ensure_transaction_limit(session, user_id)
    ensure_references(session, user_id, data.get("account_id"), data.get("category_id"))

    transaction = Transaction(user_id=user_id, **data)
    session.add(transaction)
    session.commit()
    session.refresh(transaction)

    cache.invalidate_transaction_count_cache(user_id)
    logger.info("transaction_created", user_id=user_id, transaction_id=transaction.id)
    return transaction


def delete_transaction(session: Session, user_id: int, transaction_id: int) -> None:
    transaction = get_owned(session, Transaction, transaction_id, user_id, "Transaction")
    session.delete(transaction)
    session.commit()
    cache.invalidate_transaction_count_cache(user_id)


# === Categories ===

def create_category(session: Session, user_id: int, data: dict[str, Any]) -> Category:
    limits.ensure_category_limit(session, user_id)
    parent_id = data.get("parent_category_id")
    if parent_id is not None:
        get_owned(session, Category, parent_id, user_id, "Parent category")

    category = Category(user_id=user_id, **data)
    session.add(category)
    session.commit()
    session.refresh(category)

    cache.invalidate_category_cache(user_id)
    return category


def ensure_valid_parent(session: Session, user_id: int, category_id: int, parent_id: int) -> None:
    """The new parent must be owned and must not sit below the category itself."""
    if parent_id == category_id:
        raise ValidationFailedError("A category cannot be its own parent")

    ancestor = get_owned(session, Category, parent_id, user_id, "Parent category")
    seen = set()
    while ancestor.parent_category_id is not None and ancestor.id not in seen:
        if ancestor.parent_category_id == category_id:
            raise ValidationFailedError("A category cannot be moved under one of its subcategories")
        seen.add(ancestor.id)
        ancestor = session.get(Category, ancestor.parent_category_id)
        if ancestor is None:
            break


def delete_category(session: Session, user_id: int, category_id: int) -> None:
    """Delete a category, detaching child categories and linked rows."""
    category = get_owned(session, Category, category_id, user_id, "Category")

    for model, column in (
        (Category, Category.parent_category_id),
        (Transaction, Transaction.category_id),
        (Budget, Budget.category_id),
        (Goal, Goal.category_id),
    ):
        for row in session.exec(select(model).where(column == category_id)).all():
            if model is Category:
                row.parent_category_id = None
            else:
                row.category_id = None
            session.add(row)

    session.delete(category)
    session.commit()
    cache.invalidate_category_cache(user_id)
