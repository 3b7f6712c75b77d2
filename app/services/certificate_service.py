# app/services/certificate_service.py
"""
Certificate issuance.

Two layers keep a learner from ever holding two certificates for the same
achievement:

* an in-process lock store coalesces concurrent requests for the same
  (user, type, achievement) onto one piece of work, and
* the unique constraint on ``certificate (user_id, achievement_id, type)``
  decides any race the lock store cannot see (other workers, lock disabled,
  expired entries).

The database layer is sufficient on its own; the lock store only saves work.
"""
import logging
import time
from concurrent.futures import Future
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.config import settings
from app.errors import EntitlementDenied, NotCompleted, NotFound
from app.models.certificate import AchievementType, Certificate
from app.models.course import Course
from app.models.learning_path import LearningPath
from app.models.user import User
from app.services import access_service, progress_service
from app.services.activity_log_service import log_activity
from app.utils.ttl_store import TTLStore

logger = logging.getLogger(__name__)


def generate_certificate_id() -> str:
    millis = int(time.time() * 1000)
    return f"CERT-{millis}-{uuid4().hex[:9]}".upper()


@dataclass
class CertificateResult:
    issued: bool
    certificate_id: Optional[str] = None
    newly_generated: bool = False
    is_completed: bool = True
    message: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


class CertificateIssuer:

    def __init__(
        self,
        lock_store: Optional[TTLStore] = None,
        notifier=None,
        *,
        completion=progress_service,
        entitlement=access_service,
        release_delay: float = settings.CERTIFICATE_LOCK_RELEASE_SECONDS,
        id_factory=generate_certificate_id,
    ):
        self.lock_store = lock_store
        self.notifier = notifier
        self.completion = completion
        self.entitlement = entitlement
        self.release_delay = release_delay
        self.id_factory = id_factory

    # -------------------------
    # public
    # -------------------------

    def issue(
        self,
        session: Session,
        user_id: int,
        achievement_id: int,
        achievement_type: AchievementType = AchievementType.course,
        *,
        raise_if_incomplete: bool = False,
    ) -> CertificateResult:
        achievement_type = AchievementType(achievement_type)

        if self.lock_store is None:
            return self._issue(session, user_id, achievement_id, achievement_type, raise_if_incomplete)

        key = (user_id, achievement_type.value, achievement_id)

        while True:
            future: Future = Future()
            if self.lock_store.add(key, future):
                break

            running = self.lock_store.get(key)
            if running is None:
                continue

            logger.info(f"Certificate generation already in progress for {key}, waiting")
            try:
                result = running.result(timeout=self.lock_store.default_ttl)
            except Exception:
                # failed or stuck: drop it and do the work ourselves
                self.lock_store.delete(key, running)
                continue

            if raise_if_incomplete and not result.is_completed:
                self._require_entitlement(session, user_id, achievement_id, achievement_type)
                raise NotCompleted(result.message or "Achievement not completed")
            return result

        try:
            result = self._issue(session, user_id, achievement_id, achievement_type, raise_if_incomplete)
        except BaseException as exc:
            future.set_exception(exc)
            self.lock_store.delete(key, future)
            raise

        future.set_result(result)
        self.lock_store.expire_in(key, self.release_delay)
        return result

    # -------------------------
    # internals
    # -------------------------

    def _achievement(self, session: Session, achievement_id: int, achievement_type: AchievementType):
        model = Course if achievement_type == AchievementType.course else LearningPath
        achievement = session.get(model, achievement_id)
        if not achievement:
            raise NotFound(f"{achievement_type.value.replace('_', ' ').title()} {achievement_id} not found")
        return achievement

    def _is_completed(self, session, user_id, achievement_id, achievement_type) -> bool:
        if achievement_type == AchievementType.course:
            return self.completion.has_completed_course(session, user_id, achievement_id)
        return self.completion.has_completed_learning_path(session, user_id, achievement_id)

    def _is_entitled(self, session, user_id, achievement_id, achievement_type) -> bool:
        if achievement_type == AchievementType.course:
            return self.entitlement.can_certify_course(session, user_id, achievement_id)
        return self.entitlement.can_certify_learning_path(session, user_id, achievement_id)

    def _require_entitlement(self, session, user_id, achievement_id, achievement_type) -> None:
        if not self._is_entitled(session, user_id, achievement_id, achievement_type):
            raise EntitlementDenied(
                "Your current access does not include certificates. "
                "Purchase the course or upgrade your plan to earn certificates."
            )

    def _snapshot(self, session: Session, achievement, achievement_type: AchievementType) -> dict:
        if achievement_type == AchievementType.course:
            return {"course_title": achievement.title}

        course_ids = progress_service.path_course_ids(session, achievement.id)
        courses = [session.get(Course, cid) for cid in course_ids]
        return {
            "path_title": achievement.title,
            "courses": [{"id": c.id, "title": c.title} for c in courses if c],
        }

    def _find(self, session: Session, user_id, achievement_id, achievement_type) -> Optional[Certificate]:
        return session.exec(
            select(Certificate).where(
                Certificate.user_id == user_id,
                Certificate.achievement_id == achievement_id,
                Certificate.type == achievement_type,
            )
        ).first()

    def _find_or_create(self, session: Session, user_id, achievement, achievement_type):
        existing = self._find(session, user_id, achievement.id, achievement_type)
        if existing:
            return existing, False

        certificate = Certificate(
            user_id=user_id,
            achievement_id=achievement.id,
            type=achievement_type,
            certificate_id=self.id_factory(),
            meta=self._snapshot(session, achievement, achievement_type),
        )
        session.add(certificate)
        log_activity(
            session,
            user_id,
            "certificate_earned",
            meta={
                "certificate_id": certificate.certificate_id,
                "type": achievement_type.value,
                "achievement_id": achievement.id,
                "title": achievement.title,
            },
        )

        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            winner = self._find(session, user_id, achievement.id, achievement_type)
            if winner is None:
                raise
            logger.info(f"Certificate for user {user_id} {achievement_type.value} {achievement.id} issued concurrently")
            return winner, False

        session.refresh(certificate)
        return certificate, True

    def _issue(
        self,
        session: Session,
        user_id: int,
        achievement_id: int,
        achievement_type: AchievementType,
        raise_if_incomplete: bool,
    ) -> CertificateResult:
        user = session.get(User, user_id)
        if not user:
            raise NotFound(f"User {user_id} not found")
        achievement = self._achievement(session, achievement_id, achievement_type)
        label = "Course" if achievement_type == AchievementType.course else "Learning path"

        # strict callers learn about missing access before missing progress
        if raise_if_incomplete:
            self._require_entitlement(session, user_id, achievement_id, achievement_type)

        if not self._is_completed(session, user_id, achievement_id, achievement_type):
            message = f"{label} not yet completed"
            if raise_if_incomplete:
                raise NotCompleted(message)
            return CertificateResult(issued=False, is_completed=False, message=message)

        self._require_entitlement(session, user_id, achievement_id, achievement_type)

        certificate, created = self._find_or_create(session, user_id, achievement, achievement_type)

        if created:
            logger.info(f"Issued certificate {certificate.certificate_id} to user {user_id}")
            self._notify(session, user, certificate, achievement.title)

        return CertificateResult(
            issued=True,
            certificate_id=certificate.certificate_id,
            newly_generated=created,
            is_completed=True,
            message="Certificate generated successfully" if created else "Certificate already issued",
        )

    def _notify(self, session: Session, user: User, certificate: Certificate, title: str) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.certificate_issued(session, user, certificate, title)
        except Exception:
            logger.exception(f"Certificate notification failed for {certificate.certificate_id}")

    # -------------------------
    # retroactive issuance
    # -------------------------

    def sync_certificates(self, session: Session, user_id: int, role: Optional[str] = None) -> dict:
        """Issue every certificate the user has already earned but never received."""
        stats = {"processed": 0, "generated": 0, "already_had": 0, "not_completed": 0, "errors": 0}

        targets = [
            (course_id, AchievementType.course)
            for course_id in session.exec(select(Course.id).order_by(Course.id)).all()
            if access_service.has_course_access(session, user_id, role, course_id)
        ]
        targets += [
            (path_id, AchievementType.learning_path)
            for path_id in session.exec(select(LearningPath.id).order_by(LearningPath.id)).all()
            if access_service.has_enrolled_in_learning_path(session, user_id, path_id)
        ]

        for achievement_id, achievement_type in targets:
            stats["processed"] += 1
            try:
                result = self.issue(session, user_id, achievement_id, achievement_type)
            except (EntitlementDenied, NotFound) as exc:
                logger.info(f"Skipping {achievement_type.value} {achievement_id} for user {user_id}: {exc.detail}")
                stats["errors"] += 1
                continue

            if not result.is_completed:
                stats["not_completed"] += 1
            elif result.newly_generated:
                stats["generated"] += 1
            else:
                stats["already_had"] += 1

        logger.info(f"Certificate sync for user {user_id}: {stats}")
        return stats


# -------------------------
# read side
# -------------------------

def _title(session: Session, certificate: Certificate) -> Optional[str]:
    meta = certificate.meta or {}
    if certificate.type == AchievementType.course:
        course = session.get(Course, certificate.achievement_id)
        return course.title if course else meta.get("course_title")
    path = session.get(LearningPath, certificate.achievement_id)
    return path.title if path else meta.get("path_title")


def verify_certificate(session: Session, certificate_id: str, now: Optional[datetime] = None) -> dict:
    """Public check. Never exposes the holder's email."""
    certificate = session.exec(
        select(Certificate).where(Certificate.certificate_id == certificate_id)
    ).first()
    if not certificate:
        return {"valid": False, "error": "Certificate not found"}

    if certificate.expires_at and certificate.expires_at < (now or datetime.utcnow()):
        return {"valid": False, "error": "Certificate has expired"}

    user = session.get(User, certificate.user_id)
    title = _title(session, certificate)
    is_course = certificate.type == AchievementType.course

    return {
        "valid": True,
        "certificate": {
            "certificate_id": certificate.certificate_id,
            "type": certificate.type.value,
            "student_name": user.name if user else None,
            "course_name": title if is_course else None,
            "path_name": None if is_course else title,
            "courses": (certificate.meta or {}).get("courses"),
            "issued_at": certificate.issued_at,
            "expires_at": certificate.expires_at,
        },
    }


def list_user_certificates(session: Session, user_id: int) -> list[dict]:
    certificates = session.exec(
        select(Certificate)
        .where(Certificate.user_id == user_id)
        .order_by(Certificate.issued_at.desc())
    ).all()

    return [
        {
            "certificate_id": c.certificate_id,
            "type": c.type.value,
            "achievement_id": c.achievement_id,
            "title": _title(session, c),
            "issued_at": c.issued_at,
            "expires_at": c.expires_at,
        }
        for c in certificates
    ]
