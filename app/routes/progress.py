import logging

from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.database import get_session
from app.dependencies.admin import require_customer
from app.dependencies.services import get_certificate_issuer
from app.errors import EntitlementDenied, Forbidden, NotFound
from app.models.certificate import AchievementType
from app.models.lesson import Lesson
from app.models.user import User
from app.services.access_service import has_course_access
from app.services.certificate_service import CertificateIssuer
from app.services.progress_service import course_progress, mark_lesson_complete

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{lesson_id}/complete")
def complete_lesson(
    lesson_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(require_customer),
    issuer: CertificateIssuer = Depends(get_certificate_issuer),
):
    lesson = session.get(Lesson, lesson_id)
    if not lesson:
        raise NotFound("Lesson not found")

    if not has_course_access(session, user.id, user.role, lesson.course_id):
        raise Forbidden("Course access required")

    mark_lesson_complete(session, user.id, lesson_id)

    try:
        certificate = issuer.issue(session, user.id, lesson.course_id, AchievementType.course).to_dict()
    except EntitlementDenied as exc:
        logger.info(f"No certificate for user {user.id} course {lesson.course_id}: {exc.detail}")
        certificate = {"issued": False, "message": exc.detail}

    return {
        "progress": course_progress(session, user.id, lesson.course_id),
        "certificate": certificate,
    }
