# app/services/fulfillment_service.py
"""
Purchase fulfillment: pending purchase -> paid, entitled state.

Both the redirect-capture path and the webhook path call into here for the
same purchase, often at the same time. Nothing in this module coordinates
them; the guarded UPDATE on ``purchase.status`` decides which caller does
the work and every other caller gets ``applied=False``.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import or_, update
from sqlmodel import Session, select

from app.errors import NotFound, OutOfStock
from app.models.coupon import Coupon
from app.models.course import Course
from app.models.enrollment import Enrollment
from app.models.payment import Payment
from app.models.purchase import Purchase
from app.services.activity_log_service import log_activity

logger = logging.getLogger(__name__)


@dataclass
class FulfillmentResult:
    purchase_id: int
    applied: bool
    user_id: Optional[int] = None
    course_id: Optional[int] = None
    course_title: Optional[str] = None
    amount_cents: int = 0
    currency: str = "usd"


def _mark_paid(session: Session, purchase_id: int) -> bool:
    result = session.execute(
        update(Purchase)
        .where(Purchase.id == purchase_id, Purchase.status != "paid")
        .values(status="paid", updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _take_seat(session: Session, course_id: int) -> bool:
    result = session.execute(
        update(Course)
        .where(Course.id == course_id, Course.inventory > 0)
        .values(inventory=Course.inventory - 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _consume_coupon(session: Session, coupon_id: int) -> bool:
    result = session.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon_id,
            or_(Coupon.max_uses.is_(None), Coupon.used_count < Coupon.max_uses),
        )
        .values(used_count=Coupon.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _grant_enrollment(session: Session, purchase: Purchase) -> Enrollment:
    enrollment = session.exec(
        select(Enrollment).where(
            Enrollment.user_id == purchase.user_id,
            Enrollment.course_id == purchase.course_id,
        )
    ).first()

    if enrollment:
        enrollment.purchase_id = purchase.id
    else:
        enrollment = Enrollment(
            user_id=purchase.user_id,
            course_id=purchase.course_id,
            purchase_id=purchase.id,
        )
    session.add(enrollment)
    return enrollment


def fulfill_purchase(
    session: Session,
    purchase_id: int,
    *,
    payment_ref: Optional[str] = None,
) -> FulfillmentResult:
    """
    Apply a purchase in one transaction:

    1. pending -> paid, only if not already paid (else no-op, applied=False)
    2. take one inventory seat when the course tracks inventory (OutOfStock aborts all)
    3. upsert the enrollment
    4. write the payment record
    5. count the coupon use while under its cap (silently skipped at the cap)
    6. append the audit log entry
    """
    purchase = session.get(Purchase, purchase_id)
    if not purchase:
        raise NotFound(f"Purchase {purchase_id} not found")

    course = session.get(Course, purchase.course_id)
    result = FulfillmentResult(
        purchase_id=purchase.id,
        applied=False,
        user_id=purchase.user_id,
        course_id=purchase.course_id,
        course_title=course.title if course else None,
        amount_cents=purchase.amount_cents,
        currency=purchase.currency,
    )

    try:
        if not _mark_paid(session, purchase.id):
            session.rollback()
            logger.info(f"Purchase {purchase.id} already paid, nothing to fulfill")
            return result

        if course is not None and course.inventory is not None:
            if not _take_seat(session, course.id):
                raise OutOfStock(course.id, purchase_id=purchase.id)

        _grant_enrollment(session, purchase)

        session.add(
            Payment(
                user_id=purchase.user_id,
                purchase_id=purchase.id,
                provider=purchase.provider,
                provider_ref=payment_ref or purchase.provider_ref,
                amount_cents=purchase.amount_cents,
                currency=purchase.currency,
                status="paid",
            )
        )

        if purchase.coupon_id and not _consume_coupon(session, purchase.coupon_id):
            logger.info(
                f"Coupon {purchase.coupon_id} at max uses, purchase {purchase.id} not counted"
            )

        log_activity(
            session,
            purchase.user_id,
            "purchase_completed",
            meta={
                "purchase_id": purchase.id,
                "course_id": purchase.course_id,
                "course_title": result.course_title,
                "amount_cents": purchase.amount_cents,
            },
        )

        session.commit()

    except OutOfStock:
        session.rollback()
        logger.error(
            f"Out of stock while fulfilling purchase {purchase_id} "
            f"(course {result.course_id}); left unfulfilled for manual reconciliation"
        )
        raise
    except Exception:
        session.rollback()
        logger.exception(f"Fulfillment of purchase {purchase_id} failed")
        raise

    result.applied = True
    logger.info(f"Fulfilled purchase {purchase_id} for user {result.user_id}")
    return result


def purchases_for_order(
    session: Session,
    provider_ref: str,
    purchase_ids: Optional[Iterable[int]] = None,
) -> List[Purchase]:
    statement = select(Purchase).where(Purchase.provider_ref == provider_ref)
    if purchase_ids is not None:
        statement = statement.where(Purchase.id.in_(list(purchase_ids)))
    return list(session.exec(statement.order_by(Purchase.id)).all())


def fulfill_order(
    session: Session,
    provider_ref: str,
    *,
    purchase_ids: Optional[Iterable[int]] = None,
    payment_ref: Optional[str] = None,
) -> List[FulfillmentResult]:
    """
    Fulfill every purchase attached to a gateway order, one transaction each.

    OutOfStock stops the loop; purchases already applied stay applied and
    a later redelivery only retries the rest.
    """
    purchase_ids = [p.id for p in purchases_for_order(session, provider_ref, purchase_ids)]
    return [
        fulfill_purchase(session, purchase_id, payment_ref=payment_ref)
        for purchase_id in purchase_ids
    ]
