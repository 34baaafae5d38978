"""
Household sharing endpoints.
"""
from fastapi import APIRouter

from luno.deps import CurrentUser, DBSession
from luno.schemas import (
    AcceptInviteRequest,
    HouseholdIn,
    HouseholdMemberOut,
    HouseholdOut,
    InviteRequest,
)
from luno.services import households

router = APIRouter(prefix="/api/households", tags=["households"])


@router.get("", response_model=list[HouseholdOut])
async def list_households(user: CurrentUser, db: DBSession):
    return [
        HouseholdOut.model_validate(household).model_copy(update={"role": role})
        for household, role in households.list_households(db, user.id)
    ]


@router.post("", response_model=HouseholdOut, status_code=201)
async def create_household(request: HouseholdIn, user: CurrentUser, db: DBSession):
    """Create a household; requires the Family plan."""
    household = households.create_household(db, user, request.name)
    return HouseholdOut.model_validate(household).model_copy(update={"role": "owner"})


@router.post("/invite")
async def invite_member(request: InviteRequest, user: CurrentUser, db: DBSession):
    """
    Invite someone by email.

    The invitation stands even if the email could not be sent; see `emailSent`.
    """
    return await households.invite_member(db, user, request.household_id, request.email, request.role)


@router.post("/accept")
async def accept_invitation(request: AcceptInviteRequest, user: CurrentUser, db: DBSession):
    return households.accept_invitation(db, user, request.token)


@router.get("/{household_id}/members", response_model=list[HouseholdMemberOut])
async def list_members(household_id: int, user: CurrentUser, db: DBSession):
    return households.list_members(db, household_id, user.id)


@router.delete("/{household_id}/members/{member_user_id}", status_code=204)
async def remove_member(household_id: int, member_user_id: int, user: CurrentUser, db: DBSession):
    households.remove_member(db, household_id, member_user_id, user.id)
