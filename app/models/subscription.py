from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


# ---------- ENUMS ----------

class SubscriptionStatus(str, Enum):
    pending = "pending"
    active = "active"
    cancelled = "cancelled"
    past_due = "past_due"
    expired = "expired"


class SubscriptionInterval(str, Enum):
    monthly = "monthly"
    annual = "annual"


class SubscriptionTier(str, Enum):
    starter = "starter"
    professional = "professional"
    founder = "founder"


# lowest to highest
SUBSCRIPTION_TIERS = [
    SubscriptionTier.starter,
    SubscriptionTier.professional,
    SubscriptionTier.founder,
]


# ---------- MODELS ----------

class SubscriptionPlan(SQLModel, table=True):
    __tablename__ = "subscription_plan"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    tier: SubscriptionTier = SubscriptionTier.starter

    price_monthly_cents: int = 0
    price_annual_cents: int = 0

    paypal_product_id: Optional[str] = None
    paypal_monthly_plan_id: Optional[str] = Field(default=None, index=True)
    paypal_annual_plan_id: Optional[str] = Field(default=None, index=True)

    is_active: bool = True


class Subscription(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    user_id: int = Field(foreign_key="user.id", index=True)
    plan_id: int = Field(foreign_key="subscription_plan.id")

    status: SubscriptionStatus = Field(default=SubscriptionStatus.pending, index=True)
    interval: SubscriptionInterval = SubscriptionInterval.monthly

    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False

    paypal_subscription_id: Optional[str] = Field(default=None, unique=True, index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class SubscriptionPayment(SQLModel, table=True):
    __tablename__ = "subscription_payment"

    id: Optional[int] = Field(default=None, primary_key=True)
    subscription_id: int = Field(foreign_key="subscription.id", index=True)

    amount_cents: int
    currency: str = "usd"
    status: str = "completed"
    paypal_sale_id: Optional[str] = Field(default=None, unique=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
