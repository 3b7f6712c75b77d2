from typing import List, Optional
from pydantic import BaseModel, Field


class CartCheckoutRequest(BaseModel):
    course_ids: List[int] = Field(min_length=1)
    coupon_code: Optional[str] = None


class CheckoutResponse(BaseModel):
    order_id: str
    approval_url: str
    purchase_ids: List[int]
    amount_cents: int
    discount_cents: int = 0
