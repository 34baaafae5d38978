"""
Savings goal endpoints.
"""
from typing import Optional

from fastapi import APIRouter, Query
from sqlmodel import select

from luno.db.models import Goal
from luno.deps import CurrentUser, DBSession
from luno.schemas import GoalIn, GoalOut, GoalStatus, GoalUpdate
from luno.services.records import apply_changes, ensure_references, get_owned, goal_progress

router = APIRouter(prefix="/api/goals", tags=["goals"])


def _goal_out(goal: Goal) -> GoalOut:
    out = GoalOut.model_validate(goal)
    return out.model_copy(update=goal_progress(goal))


@router.get("", response_model=list[GoalOut])
async def list_goals(user: CurrentUser, db: DBSession, status: Optional[GoalStatus] = Query(None)):
    statement = select(Goal).where(Goal.user_id == user.id)
    if status:
        statement = statement.where(Goal.status == status)
    return [_goal_out(g) for g in db.exec(statement.order_by(Goal.created_at.desc())).all()]


@router.post("", response_model=GoalOut, status_code=201)
async def create_goal(request: GoalIn, user: CurrentUser, db: DBSession):
    ensure_references(db, user.id, category_id=request.category_id)
    goal = Goal(user_id=user.id, **request.model_dump())
    db.add(goal)
    db.commit()
    db.refresh(goal)
    return _goal_out(goal)


@router.get("/{goal_id}", response_model=GoalOut)
async def get_goal(goal_id: int, user: CurrentUser, db: DBSession):
    return _goal_out(get_owned(db, Goal, goal_id, user.id, "Goal"))


@router.patch("/{goal_id}", response_model=GoalOut)
async def update_goal(goal_id: int, request: GoalUpdate, user: CurrentUser, db: DBSession):
    goal = get_owned(db, Goal, goal_id, user.id, "Goal")
    changes = request.model_dump(exclude_unset=True)
    ensure_references(db, user.id, category_id=changes.get("category_id"))
    apply_changes(goal, changes)
    db.add(goal)
    db.commit()
    db.refresh(goal)
    return _goal_out(goal)


@router.delete("/{goal_id}", status_code=204)
async def delete_goal(goal_id: int, user: CurrentUser, db: DBSession):
    db.delete(get_owned(db, Goal, goal_id, user.id, "Goal"))
    db.commit()
