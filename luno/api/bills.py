"""
Bills, third-party subscriptions and free trials the user tracks.
"""
from typing import Optional

from fastapi import APIRouter, Query
from sqlmodel import select

from luno.db.models import SubscriptionBill
from luno.deps import CurrentUser, DBSession
from luno.schemas import BillIn, BillOut, BillType, BillUpdate
from luno.services.records import apply_changes, get_owned

router = APIRouter(prefix="/api/bills", tags=["bills"])


@router.get("", response_model=list[BillOut])
async def list_bills(
    user: CurrentUser,
    db: DBSession,
    type: Optional[BillType] = Query(None),
    active_only: bool = Query(False),
):
    """Tracked items ordered by due date."""
    statement = select(SubscriptionBill).where(SubscriptionBill.user_id == user.id)
    if type:
        statement = statement.where(SubscriptionBill.type == type)
    if active_only:
        statement = statement.where(SubscriptionBill.is_active == True)  # noqa: E712
    bills = db.exec(statement.order_by(SubscriptionBill.due_date)).all()
    return [BillOut.model_validate(b) for b in bills]


@router.post("", response_model=BillOut, status_code=201)
async def create_bill(request: BillIn, user: CurrentUser, db: DBSession):
    bill = SubscriptionBill(user_id=user.id, **request.model_dump())
    db.add(bill)
    db.commit()
    db.refresh(bill)
    return BillOut.model_validate(bill)


@router.get("/{bill_id}", response_model=BillOut)
async def get_bill(bill_id: int, user: CurrentUser, db: DBSession):
    return BillOut.model_validate(get_owned(db, SubscriptionBill, bill_id, user.id, "Bill"))


@router.patch("/{bill_id}", response_model=BillOut)
async def update_bill(bill_id: int, request: BillUpdate, user: CurrentUser, db: DBSession):
    bill = get_owned(db, SubscriptionBill, bill_id, user.id, "Bill")
    changes = request.model_dump(exclude_unset=True)
    # A new due date starts a new reminder cycle
    if "due_date" in changes and changes["due_date"] != bill.due_date:
        bill.last_notified_at = None
    apply_changes(bill, changes)
    db.add(bill)
    db.commit()
    db.refresh(bill)
    return BillOut.model_validate(bill)


@router.delete("/{bill_id}", status_code=204)
async def delete_bill(bill_id: int, user: CurrentUser, db: DBSession):
    db.delete(get_owned(db, SubscriptionBill, bill_id, user.id, "Bill"))
    db.commit()
