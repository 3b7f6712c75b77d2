from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class Course(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    slug: str = Field(index=True, unique=True)
    description: Optional[str] = None

    price_cents: int = Field(default=0)
    # None means unlimited seats
    inventory: Optional[int] = None
    tier: str = Field(default="STANDARD")  # STANDARD | PREMIUM
    is_published: bool = True

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def tracks_inventory(self) -> bool:
        return self.inventory is not None

    @property
    def in_stock(self) -> bool:
        return self.inventory is None or self.inventory > 0
