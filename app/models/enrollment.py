from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint
from typing import Optional
from datetime import datetime


class Enrollment(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "course_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    purchase_id: Optional[int] = Field(default=None, foreign_key="purchase.id")

    granted_at: datetime = Field(default_factory=datetime.utcnow)
