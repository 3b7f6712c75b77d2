from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint
from typing import Optional
from datetime import datetime


class LearningPath(SQLModel, table=True):
    __tablename__ = "learning_path"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    slug: str = Field(index=True, unique=True)
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class LearningPathCourse(SQLModel, table=True):
    __tablename__ = "learning_path_course"
    __table_args__ = (UniqueConstraint("path_id", "course_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    path_id: int = Field(foreign_key="learning_path.id", index=True)
    course_id: int = Field(foreign_key="course.id")
    sort_order: int = 0
