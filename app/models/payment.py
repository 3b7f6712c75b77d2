from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class Payment(SQLModel, table=True):
    """Immutable billing record written once per fulfilled purchase."""

    id: Optional[int] = Field(default=None, primary_key=True)

    user_id: int = Field(foreign_key="user.id", index=True)
    purchase_id: Optional[int] = Field(default=None, foreign_key="purchase.id", index=True)

    provider: str = Field(default="paypal")
    provider_ref: Optional[str] = Field(default=None, index=True)

    amount_cents: int
    currency: str = Field(default="usd")
    status: str = Field(default="paid")  # pending | paid
    created_at: datetime = Field(default_factory=datetime.utcnow)
