# app/services/access_service.py
"""
Entitlement checks: who may use a course, a learning path or a certificate.

Subscriptions only entitle while their status keeps access
(active, cancelled until period end, past_due) and the period has not ended.
A pending subscription never grants access.
"""
from typing import Optional

from sqlmodel import Session, select

from app.constants.subscription_status import ENTITLED_STATUSES
from app.models.course import Course
from app.models.purchase import Purchase
from app.models.subscription import Subscription, SubscriptionPlan, SubscriptionTier
from app.services import subscription_service
from app.services.progress_service import path_course_ids

PREMIUM_TIERS = (SubscriptionTier.professional, SubscriptionTier.founder)


def is_admin(role: Optional[str]) -> bool:
    return role == "admin"


def has_purchased(session: Session, user_id: int, course_id: int) -> bool:
    purchase = session.exec(
        select(Purchase.id).where(
            Purchase.user_id == user_id,
            Purchase.course_id == course_id,
            Purchase.status == "paid",
        )
    ).first()
    return purchase is not None


def current_subscription(session: Session, user_id: int) -> Optional[tuple[Subscription, SubscriptionPlan]]:
    subscription = subscription_service.get_user_subscription(session, user_id)
    if not subscription or subscription.status not in ENTITLED_STATUSES:
        return None

    plan = session.get(SubscriptionPlan, subscription.plan_id)
    if not plan:
        return None
    return subscription, plan


def current_tier(session: Session, user_id: int) -> Optional[SubscriptionTier]:
    current = current_subscription(session, user_id)
    return current[1].tier if current else None


def has_course_access(session: Session, user_id: int, role: Optional[str], course_id: int) -> bool:
    if is_admin(role):
        return True

    if has_purchased(session, user_id, course_id):
        return True

    course = session.get(Course, course_id)
    if not course:
        return False

    tier = current_tier(session, user_id)
    if tier is None:
        return False

    if course.tier == "STANDARD":
        return True
    if course.tier == "PREMIUM":
        return tier in PREMIUM_TIERS
    return False


def has_enrolled_in_learning_path(session: Session, user_id: int, path_id: int) -> bool:
    if current_tier(session, user_id) == SubscriptionTier.founder:
        return True

    course_ids = path_course_ids(session, path_id)
    if not course_ids:
        return False

    paid = session.exec(
        select(Purchase.course_id).where(
            Purchase.user_id == user_id,
            Purchase.course_id.in_(course_ids),
            Purchase.status == "paid",
        )
    ).all()
    return len(set(paid)) == len(set(course_ids))


# -------------------------
# certificate entitlement
# -------------------------

def can_certify_course(session: Session, user_id: int, course_id: int) -> bool:
    if has_purchased(session, user_id, course_id):
        return True
    tier = current_tier(session, user_id)
    return tier is not None and tier != SubscriptionTier.starter


def can_certify_learning_path(session: Session, user_id: int, path_id: int) -> bool:
    return has_enrolled_in_learning_path(session, user_id, path_id)
