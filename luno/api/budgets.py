"""
Budget endpoints and budget progress.
"""
from fastapi import APIRouter, Query
from sqlmodel import select

from luno.db.models import Budget
from luno.deps import CurrentUser, DBSession
from luno.errors import ValidationFailedError
from luno.schemas import BudgetIn, BudgetOut, BudgetProgress, BudgetUpdate, BudgetWithProgressOut
from luno.services.budgets import derive_end_date, get_budgets_with_progress
from luno.services.records import apply_changes, ensure_references, get_owned

router = APIRouter(prefix="/api/budgets", tags=["budgets"])


def _check_dates(budget: Budget) -> None:
    if budget.end_date is not None and budget.end_date < budget.start_date:
        raise ValidationFailedError("End date must be on or after the start date")


@router.get("", response_model=list[BudgetOut])
async def list_budgets(user: CurrentUser, db: DBSession, active_only: bool = Query(False)):
    statement = select(Budget).where(Budget.user_id == user.id)
    if active_only:
        statement = statement.where(Budget.is_active == True)  # noqa: E712
    budgets = db.exec(statement.order_by(Budget.created_at.desc())).all()
    return [BudgetOut.model_validate(b) for b in budgets]


@router.get("/progress", response_model=list[BudgetWithProgressOut])
async def list_budget_progress(user: CurrentUser, db: DBSession):
    """Active budgets with spending progress."""
    return [
        BudgetWithProgressOut(
            **BudgetOut.model_validate(budget).model_dump(),
            progress=BudgetProgress(**progress),
        )
        for budget, progress in get_budgets_with_progress(db, user.id)
    ]


@router.post("", response_model=BudgetOut, status_code=201)
async def create_budget(request: BudgetIn, user: CurrentUser, db: DBSession):
    """Create a budget; end_date is derived from the period when omitted."""
    ensure_references(db, user.id, category_id=request.category_id)

    budget = Budget(user_id=user.id, **request.model_dump())
    if budget.end_date is None:
        budget.end_date = derive_end_date(budget.start_date, budget.period)
    _check_dates(budget)

    db.add(budget)
    db.commit()
    db.refresh(budget)
    return BudgetOut.model_validate(budget)


@router.get("/{budget_id}", response_model=BudgetOut)
async def get_budget(budget_id: int, user: CurrentUser, db: DBSession):
    return BudgetOut.model_validate(get_owned(db, Budget, budget_id, user.id, "Budget"))


@router.patch("/{budget_id}", response_model=BudgetOut)
async def update_budget(budget_id: int, request: BudgetUpdate, user: CurrentUser, db: DBSession):
    budget = get_owned(db, Budget, budget_id, user.id, "Budget")
    changes = request.model_dump(exclude_unset=True)
    ensure_references(db, user.id, category_id=changes.get("category_id"))

    apply_changes(budget, changes)
    if "end_date" not in changes and ({"start_date", "period"} & changes.keys()):
        budget.end_date = derive_end_date(budget.start_date, budget.period)
    _check_dates(budget)

    db.add(budget)
    db.commit()
    db.refresh(budget)
    return BudgetOut.model_validate(budget)


@router.delete("/{budget_id}", status_code=204)
async def delete_budget(budget_id: int, user: CurrentUser, db: DBSession):
    db.delete(get_owned(db, Budget, budget_id, user.id, "Budget"))
    db.commit()
