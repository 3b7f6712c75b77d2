# app/services/progress_service.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from app.errors import NotFound
from app.models.lesson import Lesson, Progress
from app.models.learning_path import LearningPathCourse


def path_course_ids(session: Session, path_id: int) -> List[int]:
    return list(
        session.exec(
            select(LearningPathCourse.course_id)
            .where(LearningPathCourse.path_id == path_id)
            .order_by(LearningPathCourse.sort_order)
        ).all()
    )


def course_progress(session: Session, user_id: int, course_id: int) -> dict:
    total = session.exec(
        select(func.count(Lesson.id)).where(Lesson.course_id == course_id)
    ).one()

    completed = session.exec(
        select(func.count(Progress.id))
        .join(Lesson, Lesson.id == Progress.lesson_id)
        .where(
            Lesson.course_id == course_id,
            Progress.user_id == user_id,
            Progress.completed_at.is_not(None),
        )
    ).one()

    return {
        "total_lessons": total,
        "completed_lessons": completed,
        "percent": round(completed * 100 / total) if total else 0,
    }


def has_completed_course(session: Session, user_id: int, course_id: int) -> bool:
    progress = course_progress(session, user_id, course_id)
    return progress["total_lessons"] > 0 and progress["completed_lessons"] == progress["total_lessons"]


def has_completed_learning_path(session: Session, user_id: int, path_id: int) -> bool:
    course_ids = path_course_ids(session, path_id)
    if not course_ids:
        return False
    return all(has_completed_course(session, user_id, cid) for cid in course_ids)


def mark_lesson_complete(
    session: Session,
    user_id: int,
    lesson_id: int,
    completed_at: Optional[datetime] = None,
) -> Progress:
    lesson = session.get(Lesson, lesson_id)
    if not lesson:
        raise NotFound(f"Lesson {lesson_id} not found")

    now = datetime.utcnow()
    progress = session.exec(
        select(Progress).where(Progress.user_id == user_id, Progress.lesson_id == lesson_id)
    ).first()

    if not progress:
        progress = Progress(user_id=user_id, lesson_id=lesson_id, started_at=now)

    progress.completed_at = completed_at or now
    progress.updated_at = now
    session.add(progress)
    session.commit()
    session.refresh(progress)
    return progress
