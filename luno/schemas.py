"""
Pydantic schemas for API request/response models.

Design principles:
- Separate input/output schemas for clear boundaries
- Update schemas are fully optional and applied with exclude_unset
- Limits mirror the web client's form validation
"""
from typing import Any, ClassVar, Literal, Optional
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from luno.security.validation import MAX_AMOUNT, validate_email, validate_hex_color

AccountType = Literal["checking", "savings", "credit", "investment", "other"]
CategoryType = Literal["income", "expense"]
TransactionType = Literal["income", "expense", "transfer"]
BudgetPeriod = Literal["weekly", "monthly", "yearly"]
GoalStatus = Literal["active", "completed", "cancelled"]
BillType = Literal["bill", "subscription", "free_trial"]
RenewalFrequency = Literal["weekly", "monthly", "quarterly", "yearly", "annually"]
IntegrationType = Literal[
    "bank", "payment", "receipt_scanner", "credit_monitor", "investment", "tax_service"
]

Amount = Field(gt=0, le=MAX_AMOUNT)


def _currency(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip().upper()
    if len(v) != 3 or not v.isalpha():
        raise ValueError("Currency must be a 3-letter code")
    return v


class _CurrencyMixin(BaseModel):
    @field_validator("currency", check_fields=False)
    @classmethod
    def normalize_currency(cls, v: Optional[str]) -> Optional[str]:
        return _currency(v)


class _PartialUpdate(BaseModel):
    """Fields in `not_null` may be omitted from a PATCH but not sent as null."""
    not_null: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def reject_nulls(self):
        nulls = [f for f in self.not_null if f in self.model_fields_set and getattr(self, f) is None]
        if nulls:
            raise ValueError(f"{', '.join(nulls)} cannot be null")
        return self


# === Auth Schemas ===

class RegisterRequest(BaseModel):
    email: str = Field(max_length=254)
    password: str = Field(min_length=8, max_length=72)
    full_name: Optional[str] = Field(default=None, max_length=200)

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v: str) -> str:
        v = v.strip().lower()
        if not validate_email(v):
            raise ValueError("Invalid email address")
        return v


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.strip().lower()


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    full_name: Optional[str]
    currency_preference: str
    timezone: str
    created_at: datetime


class UserUpdate(_CurrencyMixin):
    full_name: Optional[str] = Field(default=None, max_length=200)
    currency_preference: Optional[str] = None
    timezone: Optional[str] = Field(default=None, max_length=64)

    @field_validator("currency_preference")
    @classmethod
    def normalize_preference(cls, v: Optional[str]) -> Optional[str]:
        return _currency(v)


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


# === Account Schemas ===

class AccountIn(_CurrencyMixin):
    name: str = Field(min_length=1, max_length=100)
    type: AccountType
    balance: float = Field(default=0.0, le=MAX_AMOUNT)
    currency: str = "USD"
    description: Optional[str] = Field(default=None, max_length=500)
    is_active: bool = True


class AccountUpdate(_PartialUpdate, _CurrencyMixin):
    not_null = ("name", "type", "balance", "currency", "is_active")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[AccountType] = None
    balance: Optional[float] = Field(default=None, le=MAX_AMOUNT)
    currency: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=500)
    is_active: Optional[bool] = None


class AccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: str
    balance: float
    currency: str
    description: Optional[str]
    is_active: bool
    created_at: datetime


class AccountListOut(BaseModel):
    items: list[AccountOut]
    total_balance: float
    count: int


# === Category Schemas ===

class CategoryIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    type: CategoryType = "expense"
    parent_category_id: Optional[int] = None
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=500)

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not validate_hex_color(v):
            raise ValueError("Color must be a hex value like #1A2B3C")
        return v


class CategoryUpdate(_PartialUpdate, CategoryIn):
    not_null = ("name", "type")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[CategoryType] = None


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: str
    parent_category_id: Optional[int]
    icon: Optional[str]
    color: Optional[str]
    description: Optional[str]
    created_at: datetime


# === Transaction Schemas ===

class TransactionIn(_CurrencyMixin):
    description: str = Field(min_length=1, max_length=500)
    type: TransactionType
    amount: float = Amount
    currency: str = "USD"
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    transaction_date: date
    payment_method: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=1000)
    receipt_url: Optional[str] = Field(default=None, max_length=2000)


class TransactionUpdate(_PartialUpdate, _CurrencyMixin):
    not_null = ("description", "type", "amount", "currency", "transaction_date")

    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    type: Optional[TransactionType] = None
    amount: Optional[float] = Field(default=None, gt=0, le=MAX_AMOUNT)
    currency: Optional[str] = None
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    transaction_date: Optional[date] = None
    payment_method: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=1000)
    receipt_url: Optional[str] = Field(default=None, max_length=2000)


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: Optional[int]
    category_id: Optional[int]
    amount: float
    type: str
    currency: str
    description: str
    transaction_date: date
    payment_method: Optional[str]
    notes: Optional[str]
    receipt_url: Optional[str]
    created_at: datetime


class TransactionListOut(BaseModel):
    """Paginated list of transactions."""
    items: list[TransactionOut]
    total: int
    limit: int
    offset: int


# === Budget Schemas ===

class BudgetIn(_CurrencyMixin):
    name: Optional[str] = Field(default=None, max_length=100)
    category_id: Optional[int] = None
    amount: float = Amount
    currency: str = "USD"
    period: BudgetPeriod = "monthly"
    start_date: date
    end_date: Optional[date] = None
    is_active: bool = True


class BudgetUpdate(_PartialUpdate, _CurrencyMixin):
    not_null = ("amount", "currency", "period", "start_date", "is_active")

    name: Optional[str] = Field(default=None, max_length=100)
    category_id: Optional[int] = None
    amount: Optional[float] = Field(default=None, gt=0, le=MAX_AMOUNT)
    currency: Optional[str] = None
    period: Optional[BudgetPeriod] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: Optional[bool] = None


class BudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: Optional[str]
    category_id: Optional[int]
    amount: float
    currency: str
    period: str
    start_date: date
    end_date: Optional[date]
    is_active: bool
    created_at: datetime


class BudgetProgress(BaseModel):
    spent: float
    remaining: float
    percentage: float
    is_over_budget: bool


class BudgetWithProgressOut(BudgetOut):
    progress: BudgetProgress


# === Goal Schemas ===

class GoalIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    target_amount: float = Amount
    current_amount: float = Field(default=0.0, ge=0, le=MAX_AMOUNT)
    deadline: Optional[date] = None
    status: GoalStatus = "active"
    category_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=500)


class GoalUpdate(_PartialUpdate):
    not_null = ("name", "target_amount", "current_amount", "status")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    target_amount: Optional[float] = Field(default=None, gt=0, le=MAX_AMOUNT)
    current_amount: Optional[float] = Field(default=None, ge=0, le=MAX_AMOUNT)
    deadline: Optional[date] = None
    status: Optional[GoalStatus] = None
    category_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=500)


class GoalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    target_amount: float
    current_amount: float
    deadline: Optional[date]
    status: str
    category_id: Optional[int]
    description: Optional[str]
    created_at: datetime
    progress: int = 0
    remaining: float = 0.0
    days_remaining: Optional[int] = None


# === Bill / Subscription Schemas ===

class BillIn(_CurrencyMixin):
    name: str = Field(min_length=1, max_length=100)
    type: BillType
    amount: Optional[float] = Field(default=None, gt=0, le=MAX_AMOUNT)
    currency: Optional[str] = "USD"
    due_date: date
    renewal_frequency: Optional[RenewalFrequency] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    is_active: bool = True


class BillUpdate(_PartialUpdate, _CurrencyMixin):
    not_null = ("name", "type", "due_date", "is_active")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[BillType] = None
    amount: Optional[float] = Field(default=None, gt=0, le=MAX_AMOUNT)
    currency: Optional[str] = None
    due_date: Optional[date] = None
    renewal_frequency: Optional[RenewalFrequency] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    is_active: Optional[bool] = None


class BillOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: str
    amount: Optional[float]
    currency: Optional[str]
    due_date: date
    renewal_frequency: Optional[str]
    notes: Optional[str]
    is_active: bool
    last_notified_at: Optional[datetime]
    created_at: datetime


# === Notification Schemas ===

class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    title: str
    message: str
    related_entity_type: Optional[str]
    related_entity_id: Optional[int]
    is_read: bool
    created_at: datetime


class NotificationListOut(BaseModel):
    items: list[NotificationOut]
    unread_count: int


ReminderDays = list[int]


class NotificationPreferencesIn(BaseModel):
    bill_reminder_days: Optional[ReminderDays] = None
    subscription_reminder_days: Optional[ReminderDays] = None
    trial_reminder_days: Optional[ReminderDays] = None
    email_enabled: Optional[bool] = None
    in_app_enabled: Optional[bool] = None

    @field_validator("bill_reminder_days", "subscription_reminder_days", "trial_reminder_days")
    @classmethod
    def validate_days(cls, v: Optional[ReminderDays]) -> Optional[ReminderDays]:
        if v is None:
            return v
        if any(d < 0 or d > 365 for d in v):
            raise ValueError("Reminder days must be between 0 and 365")
        return sorted(set(v), reverse=True)


class NotificationPreferencesOut(BaseModel):
    bill_reminder_days: ReminderDays
    subscription_reminder_days: ReminderDays
    trial_reminder_days: ReminderDays
    email_enabled: bool
    in_app_enabled: bool


# === Household Schemas ===

class HouseholdIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class HouseholdOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    created_by: int
    created_at: datetime
    role: Optional[str] = None


class HouseholdMemberOut(BaseModel):
    id: int
    user_id: int
    email: str
    full_name: Optional[str]
    role: str
    joined_at: datetime


class InviteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    household_id: int = Field(alias="householdId")
    email: str = Field(max_length=254)
    role: Literal["admin", "member"] = "member"

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v: str) -> str:
        v = v.strip()
        if not validate_email(v):
            raise ValueError("Invalid email address")
        return v


class AcceptInviteRequest(BaseModel):
    token: str = Field(min_length=1, max_length=128)


# === Tool Router Schemas ===

class ToolRouterSessionCreate(BaseModel):
    toolkits: list[str] = Field(default_factory=list)


class ToolRouterSessionDelete(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: int = Field(alias="sessionId")


class ConnectionData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    connection_id: Optional[str] = Field(default=None, alias="connectionId")
    entity_id: str = Field(alias="entityId", min_length=1, max_length=200)
    entity_name: str = Field(alias="entityName", min_length=1, max_length=200)
    credentials: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None


class ConnectionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    integration_type: IntegrationType = Field(alias="integrationType")
    toolkit_name: str = Field(alias="toolkitName", min_length=1, max_length=100)
    connection_data: ConnectionData = Field(alias="connectionData")


class ConnectionDelete(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    connection_id: int = Field(alias="connectionId")


class ConnectionSyncUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    connection_id: int = Field(alias="connectionId")
    status: Literal["active", "error", "disconnected"]
    error: Optional[str] = Field(default=None, max_length=1000)


# === Chat Schemas ===

class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str = Field(max_length=20000)


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage]
    model_id: Optional[str] = Field(default=None, alias="modelId")
    provider: Optional[Literal["google", "openai"]] = None


class ToolCallOut(BaseModel):
    name: str
    arguments: dict[str, Any]
    result: Any = None
    error: Optional[str] = None


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    model: str
    provider: str
    tool_calls: list[ToolCallOut] = Field(default_factory=list, alias="toolCalls")
    steps: int


# === Health Check Schemas ===

class HealthStatus(BaseModel):
    """System health status."""
    status: str  # ok, degraded, unhealthy
    service: str
    timestamp: datetime

    # Component statuses
    database: dict[str, Any]
    integrations: dict[str, bool]

