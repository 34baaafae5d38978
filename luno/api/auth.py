"""
Registration, login and the current user's profile.
"""
from fastapi import APIRouter
from sqlmodel import select

from luno.db.models import NotificationPreference, User, UserSubscription
from luno.deps import CurrentUser, DBSession
from luno.errors import AuthenticationError, ConflictError
from luno.logger import get_logger
from luno.schemas import LoginRequest, RegisterRequest, TokenOut, UserOut, UserUpdate
from luno.security.auth import create_access_token, hash_password, verify_password
from luno.services import limits

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _token_response(user: User) -> TokenOut:
    return TokenOut(
        access_token=create_access_token(user.id, user.email),
        user=UserOut.model_validate(user),
    )


@router.post("/register", response_model=TokenOut, status_code=201)
async def register(request: RegisterRequest, db: DBSession):
    """
    Create an account on the free plan.

    Also creates the free subscription, its limits row and default
    notification preferences.
    """
    existing = db.exec(select(User).where(User.email == request.email)).first()
    if existing is not None:
        raise ConflictError("An account with this email already exists")

    user = User(
        email=request.email,
        full_name=request.full_name,
        password_hash=hash_password(request.password),
    )
    db.add(user)
    db.flush()
    db.add(UserSubscription(user_id=user.id, plan_type="free", status="active"))
    db.add(NotificationPreference(user_id=user.id))
    db.commit()
    db.refresh(user)

    limits.update_subscription_limits(db, user.id, "free")

    logger.info("user_registered", user_id=user.id)
    return _token_response(user)


@router.post("/login", response_model=TokenOut)
async def login(request: LoginRequest, db: DBSession):
    user = db.exec(select(User).where(User.email == request.email)).first()
    if user is None or not verify_password(request.password, user.password_hash):
        raise AuthenticationError("Invalid email or password")
    return _token_response(user)


@router.get("/me", response_model=UserOut)
async def get_me(user: CurrentUser):
    return UserOut.model_validate(user)


@router.patch("/me", response_model=UserOut)
async def update_me(request: UserUpdate, user: CurrentUser, db: DBSession):
    for field, value in request.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(user, field, value)
    db.add(user)
    db.commit()
    db.refresh(user)
    return UserOut.model_validate(user)
