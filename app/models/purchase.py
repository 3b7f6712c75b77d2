from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON, UniqueConstraint
from typing import Optional
from datetime import datetime


class Purchase(SQLModel, table=True):
    # one row per buyer/course; checkout refreshes the pending row
    __table_args__ = (UniqueConstraint("user_id", "course_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)

    user_id: int = Field(foreign_key="user.id", index=True)
    course_id: int = Field(foreign_key="course.id", index=True)

    amount_cents: int = Field(nullable=False)
    currency: str = Field(default="usd")
    status: str = Field(default="pending", index=True)  # pending | paid

    provider: str = Field(default="paypal")
    provider_ref: Optional[str] = Field(default=None, index=True)  # gateway order id

    coupon_id: Optional[int] = Field(default=None, foreign_key="coupon.id")
    price_original_cents: Optional[int] = None
    price_discount_cents: int = Field(default=0)
    pricing_snapshot: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
