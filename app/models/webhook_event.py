from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON, UniqueConstraint
from typing import Optional
from datetime import datetime


class WebhookEvent(SQLModel, table=True):
    """Idempotency ledger: one row per processed provider event."""

    __tablename__ = "webhook_event"
    __table_args__ = (UniqueConstraint("provider", "event_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)

    provider: str
    event_id: str
    event_type: str
    transmission_id: Optional[str] = None
    payload: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    processed_at: datetime = Field(default_factory=datetime.utcnow, index=True)
