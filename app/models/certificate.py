from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON, UniqueConstraint
from enum import Enum
from typing import Optional
from datetime import datetime


class AchievementType(str, Enum):
    course = "course"
    learning_path = "learning_path"


class Certificate(SQLModel, table=True):
    # at most one certificate per (buyer, achievement, type)
    __table_args__ = (UniqueConstraint("user_id", "achievement_id", "type"),)

    id: Optional[int] = Field(default=None, primary_key=True)

    user_id: int = Field(foreign_key="user.id", index=True)
    achievement_id: int = Field(index=True)  # course.id or learning_path.id
    type: AchievementType = AchievementType.course

    certificate_id: str = Field(index=True, unique=True)  # public identifier
    issued_at: datetime = Field(default_factory=datetime.utcnow)
    expires_at: Optional[datetime] = None
    meta: Optional[dict] = Field(default=None, sa_column=Column(JSON))
