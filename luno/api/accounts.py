"""
Account endpoints.
"""
from fastapi import APIRouter, Query
from sqlmodel import select

from luno.db.models import Account, Transaction
from luno.deps import CurrentUser, DBSession
from luno.schemas import AccountIn, AccountListOut, AccountOut, AccountUpdate
from luno.services.records import apply_changes, get_owned

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


@router.get("", response_model=AccountListOut)
async def list_accounts(
    user: CurrentUser,
    db: DBSession,
    include_inactive: bool = Query(False),
):
    """Accounts ordered by name, with the summed balance."""
    statement = select(Account).where(Account.user_id == user.id)
    if not include_inactive:
        statement = statement.where(Account.is_active == True)  # noqa: E712
    accounts = db.exec(statement.order_by(Account.name)).all()

    return AccountListOut(
        items=[AccountOut.model_validate(a) for a in accounts],
        total_balance=sum(a.balance or 0 for a in accounts),
        count=len(accounts),
    )


@router.post("", response_model=AccountOut, status_code=201)
async def create_account(request: AccountIn, user: CurrentUser, db: DBSession):
    account = Account(user_id=user.id, **request.model_dump())
    db.add(account)
    db.commit()
    db.refresh(account)
    return AccountOut.model_validate(account)


@router.get("/{account_id}", response_model=AccountOut)
async def get_account(account_id: int, user: CurrentUser, db: DBSession):
    return AccountOut.model_validate(get_owned(db, Account, account_id, user.id, "Account"))


@router.patch("/{account_id}", response_model=AccountOut)
async def update_account(account_id: int, request: AccountUpdate, user: CurrentUser, db: DBSession):
    account = get_owned(db, Account, account_id, user.id, "Account")
    apply_changes(account, request.model_dump(exclude_unset=True))
    db.add(account)
    db.commit()
    db.refresh(account)
    return AccountOut.model_validate(account)


@router.delete("/{account_id}", status_code=204)
async def delete_account(account_id: int, user: CurrentUser, db: DBSession):
    """Delete an account; its transactions keep their history without it."""
    account = get_owned(db, Account, account_id, user.id, "Account")
    for transaction in db.exec(select(Transaction).where(Transaction.account_id == account_id)).all():
        transaction.account_id = None
        db.add(transaction)
    db.delete(account)
    db.commit()
