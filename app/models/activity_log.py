from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON


class ActivityLog(SQLModel, table=True):
    __tablename__ = "activity_log"
    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)

    user_id: int = Field(foreign_key="user.id", index=True)
    type: str = Field(index=True)  # purchase_completed | certificate_earned | ...

    meta: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=datetime.utcnow)
    created_by: str = Field(default="system")
