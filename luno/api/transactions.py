"""
Transaction endpoints.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Query
from sqlmodel import desc, func, select

from luno.db.models import Transaction
from luno.deps import CurrentUser, DBSession
from luno.schemas import (
    TransactionIn,
    TransactionListOut,
    TransactionOut,
    TransactionType,
    TransactionUpdate,
)
from luno.services import cache
from luno.services.records import (
    apply_changes,
    create_transaction,
    delete_transaction,
    ensure_references,
    get_owned,
)

router = APIRouter(prefix="/api/transactions", tags=["transactions"])


@router.get("", response_model=TransactionListOut)
async def list_transactions(
    user: CurrentUser,
    db: DBSession,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    type: Optional[TransactionType] = Query(None),
    category_id: Optional[int] = Query(None),
    account_id: Optional[int] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """
    List transactions with filters and pagination.

    Transactions are returned newest first.
    """
    filters = [Transaction.user_id == user.id]
    if start_date:
        filters.append(Transaction.transaction_date >= start_date)
    if end_date:
        filters.append(Transaction.transaction_date <= end_date)
    if type:
        filters.append(Transaction.type == type)
    if category_id is not None:
        filters.append(Transaction.category_id == category_id)
    if account_id is not None:
        filters.append(Transaction.account_id == account_id)

    total = db.exec(select(func.count(Transaction.id)).where(*filters)).one()
    transactions = db.exec(
        select(Transaction)
        .where(*filters)
        .order_by(desc(Transaction.transaction_date), desc(Transaction.created_at))
        .offset(offset)
        .limit(limit)
    ).all()

    return TransactionListOut(
        items=[TransactionOut.model_validate(t) for t in transactions],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=TransactionOut, status_code=201)
async def add_transaction(request: TransactionIn, user: CurrentUser, db: DBSession):
    """Create a transaction; subject to the plan's transaction limit."""
    return TransactionOut.model_validate(create_transaction(db, user.id, request.model_dump()))


@router.post("/invalidate-cache")
async def invalidate_transaction_cache(user: CurrentUser):
    cache.invalidate_transaction_count_cache(user.id)
    return {"success": True}


@router.get("/{transaction_id}", response_model=TransactionOut)
async def get_transaction(transaction_id: int, user: CurrentUser, db: DBSession):
    return TransactionOut.model_validate(get_owned(db, Transaction, transaction_id, user.id, "Transaction"))


@router.patch("/{transaction_id}", response_model=TransactionOut)
async def update_transaction(
    transaction_id: int,
    request: TransactionUpdate,
    user: CurrentUser,
    db: DBSession,
):
    transaction = get_owned(db, Transaction, transaction_id, user.id, "Transaction")
    changes = request.model_dump(exclude_unset=True)
    ensure_references(db, user.id, changes.get("account_id"), changes.get("category_id"))

    apply_changes(transaction, changes)
    db.add(transaction)
    db.commit()
    db.refresh(transaction)

    if "receipt_url" in changes:
        cache.invalidate_transaction_count_cache(user.id)
    return TransactionOut.model_validate(transaction)


@router.delete("/{transaction_id}", status_code=204)
async def remove_transaction(transaction_id: int, user: CurrentUser, db: DBSession):
    delete_transaction(db, user.id, transaction_id)
