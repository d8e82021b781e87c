from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator


class Category(str, Enum):
    STREAMING = "streaming"
    MUSIC = "music"
    SOFTWARE = "software"
    GAMING = "gaming"
    FITNESS = "fitness"
    EDUCATION = "education"
    UTILITIES = "utilities"
    RENT = "rent"
    INSURANCE = "insurance"
    MEMBERSHIP = "membership"
    OTHER = "other"


class BillingCycle(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class NotificationType(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    DELIVERED = "delivered"


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive UTC; offset-aware input is converted."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ----------------------------------------------------------------------
# Subscriptions
# ----------------------------------------------------------------------
class SubscriptionIn(BaseModel):
    name: str = Field(..., min_length=1, description="Display name, e.g. 'Netflix'")
    category: Category = Category.OTHER
    description: Optional[str] = None
    amount: float = Field(..., ge=0, description="Charge per billing cycle")
    currency: str = "USD"
    billing_cycle: BillingCycle
    next_billing_date: datetime
    trial_end_date: Optional[datetime] = None
    is_active: bool = True
    auto_renew: bool = True
    website: Optional[str] = None
    account_email: Optional[str] = None
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    payment_method: Optional[str] = None

    @field_validator("name", "description", "website", "account_email", "notes", "payment_method")
    @classmethod
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value is not None else value

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("next_billing_date", "trial_end_date")
    @classmethod
    def _to_naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return naive_utc(value)


class SubscriptionUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    category: Optional[Category] = None
    description: Optional[str] = None
    amount: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = None
    billing_cycle: Optional[BillingCycle] = None
    next_billing_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    is_active: Optional[bool] = None
    auto_renew: Optional[bool] = None
    website: Optional[str] = None
    account_email: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[List[str]] = None
    payment_method: Optional[str] = None

    @field_validator("next_billing_date", "trial_end_date")
    @classmethod
    def _to_naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return naive_utc(value)


class Subscription(SubscriptionIn):
    id: int
    user_id: int
    last_payment_date: Optional[datetime] = None
    total_paid: float = 0.0
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("last_payment_date", "created_at")
    @classmethod
    def _stamps_to_naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return naive_utc(value)


# ----------------------------------------------------------------------
# Users
# ----------------------------------------------------------------------
class NotificationPreferences(BaseModel):
    email_notifications: bool = True
    sms_notifications: bool = False
    reminder_days: int = Field(3, ge=0)


class PreferencesUpdate(BaseModel):
    email_notifications: Optional[bool] = None
    sms_notifications: Optional[bool] = None
    reminder_days: Optional[int] = Field(None, ge=0)


class UserIn(BaseModel):
    email: str
    first_name: str = ""
    last_name: str = ""
    phone: Optional[str] = None
    preferences: NotificationPreferences = Field(default_factory=NotificationPreferences)


class User(UserIn):
    id: int
    is_active: bool = True


# ----------------------------------------------------------------------
# Notifications
# ----------------------------------------------------------------------
MetadataValue = Union[str, int, float, bool]


class Notification(BaseModel):
    id: Optional[int] = None
    user_id: int
    subscription_id: int
    type: NotificationType
    status: NotificationStatus = NotificationStatus.PENDING
    message: str
    scheduled_for: datetime
    sent_at: Optional[datetime] = None
    error: Optional[str] = None
    metadata: Optional[Dict[str, MetadataValue]] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class DeliveryOutcome(BaseModel):
    """Result of one delivery attempt over one channel."""

    channel: NotificationType
    ok: bool
    notification: Notification
    error: Optional[str] = None


class SweepReport(BaseModel):
    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    outcomes: List[DeliveryOutcome] = Field(default_factory=list)


class ManualMessageIn(BaseModel):
    type: NotificationType
    message: str = Field(..., min_length=1)


class NotificationHistory(BaseModel):
    notifications: List[Notification]
    page: int
    limit: int
    total: int
    pages: int


class NotificationTypeStats(BaseModel):
    count: int = 0
    sent: int = 0
    failed: int = 0


class NotificationStats(BaseModel):
    status_stats: Dict[str, int] = Field(default_factory=dict)
    type_stats: Dict[str, NotificationTypeStats] = Field(default_factory=dict)


# ----------------------------------------------------------------------
# Analysis
# ----------------------------------------------------------------------
class CategorySummary(BaseModel):
    count: int = 0
    total_monthly: float = 0.0
    subscriptions: List[Subscription] = Field(default_factory=list)


class Insight(BaseModel):
    type: str
    title: str
    message: str
    priority: str


class Recommendation(BaseModel):
    type: str
    title: str
    message: str
    potential_savings: float
    action: str
    subscription_id: Optional[int] = None


class AnalysisResult(BaseModel):
    total_spending: float = 0.0
    monthly_spending: float = 0.0
    yearly_spending: float = 0.0
    categories: Dict[str, CategorySummary] = Field(default_factory=dict)
    insights: List[Insight] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    health_score: int = 100
    savings_opportunities: List[Recommendation] = Field(default_factory=list)


class HealthSummary(BaseModel):
    score: int
    level: str
    monthly_spending: float
    yearly_spending: float
    active_subscriptions: int
    top_category: str


class SavingsSummary(BaseModel):
    opportunities: List[Recommendation]
    recommendations: List[Recommendation]
    total_potential_savings: float
    monthly_spending: float
    potential_savings_percentage: float


class SpendingOverview(BaseModel):
    total_monthly: float = 0.0
    total_yearly: float = 0.0
    count: int = 0


class CategoryStat(BaseModel):
    category: str
    count: int
    total_amount: float


class SubscriptionStats(BaseModel):
    overview: SpendingOverview
    category_stats: List[CategoryStat]
    upcoming_renewals: List[Subscription]
