"""
SQLModel database models.

Every user-owned table carries `user_id`; services always filter on it,
which is how per-user row isolation is enforced.
"""
from typing import Optional
from datetime import date, datetime, timezone
from sqlmodel import SQLModel, Field, Column, Text, Index, UniqueConstraint


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite returns naive datetimes; treat them as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# === Users ===

class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True, max_length=254)
    full_name: Optional[str] = Field(default=None, max_length=200)
    password_hash: str = Field(max_length=100)
    currency_preference: str = Field(default="USD", max_length=3)
    timezone: str = Field(default="UTC", max_length=64)
    created_at: datetime = Field(default_factory=utc_now, nullable=False)


# === Core finance entities ===

class Account(SQLModel, table=True):
    __tablename__ = "accounts"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    name: str = Field(max_length=100)
    type: str = Field(max_length=20)  # checking, savings, credit, investment, other
    balance: float = Field(default=0.0)
    currency: str = Field(default="USD", max_length=3)
    description: Optional[str] = Field(default=None, max_length=500)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)


class Category(SQLModel, table=True):
    __tablename__ = "categories"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    name: str = Field(max_length=100)
    type: str = Field(default="expense", max_length=10)  # income, expense
    parent_category_id: Optional[int] = Field(default=None, foreign_key="categories.id")
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, max_length=7)
    description: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=utc_now, nullable=False)


class Transaction(SQLModel, table=True):
    __tablename__ = "transactions"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    account_id: Optional[int] = Field(default=None, foreign_key="accounts.id")
    category_id: Optional[int] = Field(default=None, foreign_key="categories.id")

    amount: float
    type: str = Field(max_length=10)  # income, expense, transfer
    currency: str = Field(default="USD", max_length=3)
    description: str = Field(default="", max_length=500)
    transaction_date: date
    payment_method: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = Field(default=None, sa_column=Column(Text))
    receipt_url: Optional[str] = Field(default=None, sa_column=Column(Text))

    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_transactions_user_date", "user_id", "transaction_date"),
        Index("idx_transactions_category", "category_id"),
    )


class Budget(SQLModel, table=True):
    __tablename__ = "budgets"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    name: Optional[str] = Field(default=None, max_length=100)
    category_id: Optional[int] = Field(default=None, foreign_key="categories.id")
    amount: float
    currency: str = Field(default="USD", max_length=3)
    period: str = Field(default="monthly", max_length=10)  # weekly, monthly, yearly
    start_date: date
    end_date: Optional[date] = None
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now, nullable=False)


class Goal(SQLModel, table=True):
    __tablename__ = "goals"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    name: str = Field(max_length=100)
    target_amount: float
    current_amount: float = Field(default=0.0)
    deadline: Optional[date] = None
    status: str = Field(default="active", max_length=10)  # active, completed, cancelled
    category_id: Optional[int] = Field(default=None, foreign_key="categories.id")
    description: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=utc_now, nullable=False)


# === Households ===

class Household(SQLModel, table=True):
    __tablename__ = "households"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=100)
    created_by: int = Field(foreign_key="users.id", index=True)
    created_at: datetime = Field(default_factory=utc_now, nullable=False)


class HouseholdMember(SQLModel, table=True):
    __tablename__ = "household_members"

    id: Optional[int] = Field(default=None, primary_key=True)
    household_id: int = Field(foreign_key="households.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    role: str = Field(default="member", max_length=10)  # owner, admin, member
    joined_at: datetime = Field(default_factory=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("household_id", "user_id", name="uq_household_member"),
    )


class HouseholdInvitation(SQLModel, table=True):
    __tablename__ = "household_invitations"

    id: Optional[int] = Field(default=None, primary_key=True)
    household_id: int = Field(foreign_key="households.id", index=True)
    invited_by: int = Field(foreign_key="users.id")
    email: str = Field(max_length=254)
    token: str = Field(unique=True, index=True, max_length=64)
    role: str = Field(default="member", max_length=10)
    status: str = Field(default="pending", max_length=10)  # pending, accepted, expired, cancelled
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_invitations_household_email", "household_id", "email"),
    )


# === Billing ===

class UserSubscription(SQLModel, table=True):
    """Application plan for a user, driven by Lemon Squeezy webhooks."""
    __tablename__ = "user_subscriptions"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", unique=True, index=True)
    plan_type: str = Field(default="free", max_length=10)  # free, pro, family
    status: str = Field(default="active", max_length=20)

    lemon_squeezy_subscription_id: Optional[str] = Field(default=None, index=True, max_length=64)
    lemon_squeezy_customer_id: Optional[str] = Field(default=None, max_length=64)
    lemon_squeezy_order_id: Optional[str] = Field(default=None, max_length=64)

    # Encrypted JSON (card brand / last four)
    secure_metadata: Optional[str] = Field(default=None, sa_column=Column(Text))

    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = Field(default=False)

    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)


class SubscriptionLimits(SQLModel, table=True):
    """Per-user feature quotas. -1 means unlimited."""
    __tablename__ = "subscription_limits"

    user_id: int = Field(foreign_key="users.id", primary_key=True)
    transactions_limit: Optional[int] = Field(default=50)
    categories_limit: Optional[int] = Field(default=10)
    bank_connections_limit: Optional[int] = Field(default=1)
    receipt_scans_limit: Optional[int] = Field(default=0)
    family_members_limit: Optional[int] = Field(default=0)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)


# === Bills, subscriptions and notifications ===

class SubscriptionBill(SQLModel, table=True):
    """A recurring bill, third-party subscription or free trial the user tracks."""
    __tablename__ = "subscriptions_bills"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    name: str = Field(max_length=100)
    type: str = Field(max_length=20)  # bill, subscription, free_trial
    amount: Optional[float] = None
    currency: Optional[str] = Field(default="USD", max_length=3)
    due_date: date = Field(index=True)
    renewal_frequency: Optional[str] = Field(default=None, max_length=20)
    notes: Optional[str] = Field(default=None, sa_column=Column(Text))
    is_active: bool = Field(default=True)
    last_notified_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now, nullable=False)


class NotificationPreference(SQLModel, table=True):
    __tablename__ = "notification_preferences"

    user_id: int = Field(foreign_key="users.id", primary_key=True)

    # JSON arrays of day offsets
    bill_reminder_days: str = Field(default="[7, 3, 1]", sa_column=Column(Text, nullable=False))
    subscription_reminder_days: str = Field(default="[7, 3, 1]", sa_column=Column(Text, nullable=False))
    trial_reminder_days: str = Field(default="[7, 3, 1]", sa_column=Column(Text, nullable=False))

    email_enabled: bool = Field(default=True)
    in_app_enabled: bool = Field(default=True)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    type: str = Field(max_length=30)
    title: str = Field(sa_column=Column(Text, nullable=False))
    message: str = Field(sa_column=Column(Text, nullable=False))
    related_entity_type: Optional[str] = Field(default=None, max_length=50)
    related_entity_id: Optional[int] = None
    is_read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_notifications_user_read", "user_id", "is_read"),
    )


# === External integrations ===

class ExternalConnection(SQLModel, table=True):
    __tablename__ = "external_connections"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    integration_type: str = Field(max_length=20)
    toolkit_name: str = Field(max_length=100)
    connection_id: Optional[str] = Field(default=None, max_length=200)
    connected_entity_id: str = Field(max_length=200)
    connected_entity_name: str = Field(max_length=200)
    status: str = Field(default="active", max_length=20)  # active, error, disconnected

    secure_metadata: Optional[str] = Field(default=None, sa_column=Column(Text))
    connection_metadata: str = Field(default="{}", sa_column=Column(Text, nullable=False))

    last_synced_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_connections_user_type", "user_id", "integration_type"),
    )


class ToolRouterSession(SQLModel, table=True):
    __tablename__ = "tool_router_sessions"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    session_id: Optional[str] = Field(default=None, max_length=200)
    session_url: str = Field(sa_column=Column(Text, nullable=False))
    toolkits: str = Field(default="[]", sa_column=Column(Text, nullable=False))
    expires_at: datetime
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now, nullable=False)
