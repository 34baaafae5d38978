"""
Household sharing: membership, invitations and acceptance.
"""
import secrets
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from luno.config import get_settings
from luno.db.models import (
    Household,
    HouseholdInvitation,
    HouseholdMember,
    User,
    as_utc,
    utc_now,
)
from luno.errors import (
    ConflictError,
    LimitExceededError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from luno.logger import get_logger
from luno.security.validation import sanitize_string
from luno.services import email as email_service
from luno.services import limits

logger = get_logger(__name__)

MANAGER_ROLES = ("owner", "admin")


def create_household(session: Session, user: User, name: str) -> Household:
    """Create a household with the creator as owner."""
    if not limits.has_feature(session, user.id, "family_sharing"):
        raise PermissionDeniedError("Household sharing requires the Family plan")

    household = Household(name=sanitize_string(name, 100), created_by=user.id)
    session.add(household)
    session.flush()
    session.add(HouseholdMember(household_id=household.id, user_id=user.id, role="owner"))
    session.commit()
    session.refresh(household)

    logger.info("household_created", household_id=household.id, user_id=user.id)
    return household


def list_households(session: Session, user_id: int) -> list[tuple[Household, str]]:
    """Households the user belongs to, with the user's role."""
    rows = session.exec(
        select(Household, HouseholdMember.role)
        .join(HouseholdMember, HouseholdMember.household_id == Household.id)
        .where(HouseholdMember.user_id == user_id)
        .order_by(Household.created_at.desc())
    ).all()
    return [(household, role) for household, role in rows]


def _get_membership(session: Session, household_id: int, user_id: int) -> Optional[HouseholdMember]:
    return session.exec(
        select(HouseholdMember).where(
            HouseholdMember.household_id == household_id,
            HouseholdMember.user_id == user_id,
        )
    ).first()


def _get_household(session: Session, household_id: int) -> Household:
    household = session.get(Household, household_id)
    if household is None:
        raise NotFoundError("Household not found")
    return household


def _can_manage(session: Session, household: Household, user_id: int) -> bool:
    if household.created_by == user_id:
        return True
    membership = _get_membership(session, household.id, user_id)
    return membership is not None and membership.role in MANAGER_ROLES


def list_members(session: Session, household_id: int, user_id: int) -> list[dict[str, Any]]:
    household = _get_household(session, household_id)
    if household.created_by != user_id and _get_membership(session, household_id, user_id) is None:
        raise NotFoundError("Household not found")

    rows = session.exec(
        select(HouseholdMember, User)
        .join(User, User.id == HouseholdMember.user_id)
        .where(HouseholdMember.household_id == household_id)
        .order_by(HouseholdMember.joined_at)
    ).all()
    return [
        {
            "id": member.id,
            "user_id": member.user_id,
            "email": member_user.email,
            "full_name": member_user.full_name,
            "role": member.role,
            "joined_at": member.joined_at,
        }
        for member, member_user in rows
    ]


def remove_member(session: Session, household_id: int, member_user_id: int, user_id: int) -> None:
    household = _get_household(session, household_id)
    if not _can_manage(session, household, user_id):
        raise PermissionDeniedError("You do not have permission to remove members from this household")
    if member_user_id == household.created_by:
        raise ValidationFailedError("The household creator cannot be removed")

    membership = _get_membership(session, household_id, member_user_id)
    if membership is None:
        raise NotFoundError("Member not found")

    session.delete(membership)
    session.commit()
    logger.info("household_member_removed", household_id=household_id, member_user_id=member_user_id)


def _member_count(session: Session, household_id: int) -> int:
    return session.exec(
        select(func.count(HouseholdMember.id)).where(HouseholdMember.household_id == household_id)
    ).one()


async def invite_member(
    session: Session,
    inviter: User,
    household_id: int,
    invite_email: str,
    role: str = "member",
) -> dict[str, Any]:
    """
    Create a pending invitation and email the invitee.

    A failed email does not fail the invitation.
    """
    settings = get_settings()
    household = session.get(Household, household_id)
    if household is None:
        raise NotFoundError("Household not found")

    if not _can_manage(session, household, inviter.id):
        raise PermissionDeniedError("You do not have permission to invite members to this household")

    existing = session.exec(
        select(HouseholdInvitation).where(
            HouseholdInvitation.household_id == household_id,
            HouseholdInvitation.email == invite_email,
            HouseholdInvitation.status == "pending",
        )
    ).first()
    if existing is not None:
        raise ConflictError("An invitation has already been sent to this email")

    # Seats are counted against the household creator's plan
    if not limits.check_family_member_limit(session, household.created_by, _member_count(session, household_id)):
        owner_limits = limits.get_subscription_limits(session, household.created_by) or {}
        raise LimitExceededError("family_members", owner_limits.get("family_members_limit") or 0)

    token = secrets.token_hex(32)
    invitation = HouseholdInvitation(
        household_id=household_id,
        invited_by=inviter.id,
        email=invite_email,
        token=token,
        role=role,
        status="pending",
        expires_at=utc_now() + timedelta(days=settings.INVITATION_EXPIRY_DAYS),
    )
    session.add(invitation)
    session.commit()
    session.refresh(invitation)

    inviter_name = inviter.full_name or inviter.email or "Someone"
    invite_url = f"{settings.APP_URL.rstrip('/')}/households/accept?token={token}"
    subject, html = email_service.household_invitation_email(
        inviter_name,
        household.name or "a household",
        invite_url,
        settings.INVITATION_EXPIRY_DAYS,
    )
    result = await email_service.send_email(invite_email, subject, html)
    if not result["success"]:
        logger.warning("invitation_email_failed", invitation_id=invitation.id)

    logger.info("household_invitation_created", household_id=household_id, invitation_id=invitation.id)
    return {
        "success": True,
        "invitation": {
            "id": invitation.id,
            "email": invitation.email,
            "status": invitation.status,
        },
        "emailSent": result["success"],
    }


def accept_invitation(session: Session, user: User, token: str) -> dict[str, Any]:
    invitation = session.exec(
        select(HouseholdInvitation).where(
            HouseholdInvitation.token == token,
            HouseholdInvitation.status == "pending",
        )
    ).first()
    if invitation is None:
        raise NotFoundError("Invalid or expired invitation")

    now = utc_now()
    if as_utc(invitation.expires_at) < now:
        invitation.status = "expired"
        session.add(invitation)
        session.commit()
        raise ValidationFailedError("Invitation has expired")

    if invitation.email.lower() != (user.email or "").lower():
        raise PermissionDeniedError("This invitation was sent to a different email address")

    if _get_membership(session, invitation.household_id, user.id) is not None:
        invitation.status = "accepted"
        invitation.accepted_at = now
        session.add(invitation)
        session.commit()
        return {"success": True, "message": "You are already a member of this household"}

    session.add(HouseholdMember(
        household_id=invitation.household_id,
        user_id=user.id,
        role=invitation.role,
    ))
    invitation.status = "accepted"
    invitation.accepted_at = now
    session.add(invitation)
    session.commit()

    logger.info("household_invitation_accepted", household_id=invitation.household_id, user_id=user.id)
    return {
        "success": True,
        "message": "Successfully joined household",
        "householdId": invitation.household_id,
    }


def expire_invitations(session: Session) -> int:
    """Mark pending invitations past their expiry as expired."""
    now = utc_now()
    pending = session.exec(
        select(HouseholdInvitation).where(HouseholdInvitation.status == "pending")
    ).all()

    expired = 0
    for invitation in pending:
        if as_utc(invitation.expires_at) < now:
            invitation.status = "expired"
            session.add(invitation)
            expired += 1
    session.commit()
    return expired
