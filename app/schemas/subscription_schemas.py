from typing import Optional
from datetime import datetime
from pydantic import BaseModel

from app.models.subscription import SubscriptionInterval


class SubscriptionOut(BaseModel):
    id: int
    status: str
    interval: str
    plan_id: int
    plan_name: Optional[str] = None
    tier: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False


class GrantSubscriptionRequest(BaseModel):
    user_id: int
    plan_id: int
    interval: SubscriptionInterval = SubscriptionInterval.monthly
    duration_days: int = 30
