from sqlmodel import SQLModel, Field
from enum import Enum
from typing import Optional
from datetime import datetime


class DiscountType(str, Enum):
    FIXED = "FIXED"
    PERCENTAGE = "PERCENTAGE"


class Coupon(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True)

    discount_type: DiscountType = DiscountType.FIXED
    # cents for FIXED, percent for PERCENTAGE
    discount_amount: int
    max_discount_amount: Optional[int] = None
    min_order_amount: Optional[int] = None

    start_date: datetime = Field(default_factory=datetime.utcnow)
    end_date: Optional[datetime] = None
    is_active: bool = True

    used_count: int = Field(default=0)
    max_uses: Optional[int] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
