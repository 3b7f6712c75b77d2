# app/services/checkout_service.py
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional
from urllib.parse import quote

from sqlmodel import Session, select

from app.config import settings
from app.errors import CommerceError, Forbidden, NotFound, OutOfStock, UpstreamGatewayFailure
from app.models.course import Course
from app.models.learning_path import LearningPath
from app.models.purchase import Purchase
from app.models.user import User
from app.services.coupon_service import prorate_discount, resolve_coupon
from app.services.fulfillment_service import FulfillmentResult, fulfill_order, purchases_for_order
from app.services.paypal_client import capture_id
from app.services.progress_service import path_course_ids

logger = logging.getLogger(__name__)


@dataclass
class CheckoutResult:
    order_id: str
    approval_url: str
    purchase_ids: List[int]
    amount_cents: int
    discount_cents: int = 0


@dataclass
class CaptureResult:
    order_id: str
    results: List[FulfillmentResult] = field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return sum(1 for r in self.results if r.applied)


def _paid_course_ids(session: Session, user_id: int, course_ids: Iterable[int]) -> set:
    return set(
        session.exec(
            select(Purchase.course_id).where(
                Purchase.user_id == user_id,
                Purchase.course_id.in_(list(course_ids)),
                Purchase.status == "paid",
            )
        ).all()
    )


def _upsert_pending_purchase(
    session: Session,
    user: User,
    course: Course,
    *,
    amount_cents: int,
    item_discount: int,
    order_discount: int,
    coupon,
) -> Purchase:
    purchase = session.exec(
        select(Purchase).where(Purchase.user_id == user.id, Purchase.course_id == course.id)
    ).first()
    if not purchase:
        purchase = Purchase(user_id=user.id, course_id=course.id, amount_cents=amount_cents)

    purchase.status = "pending"
    purchase.provider = "paypal"
    purchase.currency = settings.DEFAULT_CURRENCY
    purchase.amount_cents = amount_cents
    purchase.coupon_id = coupon.id if coupon else None
    purchase.price_original_cents = course.price_cents
    purchase.price_discount_cents = item_discount
    purchase.pricing_snapshot = {
        "coupon_id": coupon.id if coupon else None,
        "coupon_code": coupon.code if coupon else None,
        "discount_type": coupon.discount_type.value if coupon else None,
        "discount_amount": coupon.discount_amount if coupon else None,
        "discount_applied_cents": item_discount,
        "total_order_discount_cents": order_discount,
        "original_price_cents": course.price_cents,
        "final_price_cents": amount_cents,
    }
    purchase.updated_at = datetime.utcnow()
    session.add(purchase)
    return purchase


def create_cart_checkout(
    session: Session,
    user: User,
    course_ids: List[int],
    gateway,
    *,
    coupon_code: Optional[str] = None,
    app_url: Optional[str] = None,
    cancel_path: str = "/cart?checkout=cancelled",
    source: Optional[str] = None,
) -> CheckoutResult:
    """
    Create pending purchases for the courses the user does not own yet and
    one gateway order covering all of them.
    ``source`` rides along on the return URL so a failed capture can send
    the buyer back to the page checkout started from.
    """
    if user.is_admin:
        raise Forbidden("Admins cannot purchase courses")

    if not course_ids:
        raise CommerceError("Course IDs are required")

    course_ids = list(dict.fromkeys(course_ids))
    courses = session.exec(select(Course).where(Course.id.in_(course_ids))).all()
    if len(courses) != len(course_ids):
        raise NotFound("Some courses not found")

    owned = _paid_course_ids(session, user.id, course_ids)
    to_buy = sorted((c for c in courses if c.id not in owned), key=lambda c: course_ids.index(c.id))
    if not to_buy:
        raise CommerceError("You already own all selected courses")

    sold_out = [c for c in to_buy if not c.in_stock]
    if sold_out:
        raise CommerceError(
            f"Some courses are out of stock: {', '.join(c.title for c in sold_out)}"
        )

    prices = [c.price_cents for c in to_buy]
    coupon, discount_total = resolve_coupon(session, coupon_code, sum(prices))
    item_discounts = prorate_discount(prices, discount_total)

    purchases = [
        _upsert_pending_purchase(
            session,
            user,
            course,
            amount_cents=max(0, course.price_cents - item_discount),
            item_discount=item_discount,
            order_discount=discount_total,
            coupon=coupon,
        )
        for course, item_discount in zip(to_buy, item_discounts)
    ]
    session.commit()
    for purchase in purchases:
        session.refresh(purchase)

    purchase_ids = [p.id for p in purchases]
    total = sum(p.amount_cents for p in purchases)
    base_url = (app_url or settings.APP_URL).rstrip("/")

    order = gateway.create_order(
        amount_cents=total,
        currency=settings.DEFAULT_CURRENCY,
        return_url=(
            f"{base_url}/payments/paypal/capture"
            f"?purchases={quote(','.join(str(pid) for pid in purchase_ids))}"
            + (f"&source={quote(source)}" if source else "")
        ),
        cancel_url=f"{base_url}{cancel_path}",
        reference_id=str(purchase_ids[0]),
    )

    for purchase in purchases:
        purchase.provider_ref = order["order_id"]
        session.add(purchase)
    session.commit()

    logger.info(
        f"Created PayPal order {order['order_id']} for user {user.id}, "
        f"purchases {purchase_ids}, total {total}"
    )
    return CheckoutResult(
        order_id=order["order_id"],
        approval_url=order["approval_url"],
        purchase_ids=purchase_ids,
        amount_cents=total,
        discount_cents=discount_total,
    )


def create_learning_path_checkout(
    session: Session,
    user: User,
    path_id: int,
    gateway,
    *,
    app_url: Optional[str] = None,
) -> CheckoutResult:
    path = session.get(LearningPath, path_id)
    if not path:
        raise NotFound("Learning path not found")

    course_ids = path_course_ids(session, path_id)
    if not course_ids:
        raise CommerceError("Learning path has no courses")

    return create_cart_checkout(
        session,
        user,
        course_ids,
        gateway,
        app_url=app_url,
        cancel_path=f"/learning-paths/{path.slug}?checkout=cancelled",
        source="learning-paths",
    )


def capture_checkout(
    session: Session,
    order_id: str,
    gateway,
    notifier,
    *,
    purchase_ids: Optional[List[int]] = None,
) -> CaptureResult:
    """
    Redirect-side capture. Races the webhook for the same order; whichever
    reaches fulfillment second sees ``applied=False`` and does nothing.
    """
    purchases = purchases_for_order(session, order_id, purchase_ids)
    if not purchases:
        raise NotFound(f"No purchases for order {order_id}")

    user = session.get(User, purchases[0].user_id)

    if all(p.status == "paid" for p in purchases):
        logger.info(f"Order {order_id} already fulfilled, skipping capture")
        return CaptureResult(order_id=order_id)

    try:
        capture = gateway.capture_order(order_id) or {}
    except UpstreamGatewayFailure as exc:
        notifier.purchase_failed(session, user, order_id=order_id, reason=exc.detail)
        raise

    status = capture.get("status")
    if status != "COMPLETED":
        reason = f"Payment not completed (status {status})"
        logger.warning(f"Capture of order {order_id} returned {status}")
        notifier.purchase_failed(session, user, order_id=order_id, reason=reason)
        raise UpstreamGatewayFailure(reason)

    try:
        results = fulfill_order(
            session,
            order_id,
            purchase_ids=purchase_ids,
            payment_ref=capture_id(capture),
        )
    except OutOfStock as exc:
        notifier.fulfillment_failed(
            session,
            order_id=order_id,
            purchase_id=exc.purchase_id,
            reason=exc.detail,
            user=user,
        )
        raise

    notifier.purchase_confirmed(session, user, results)
    notifier.enrollment_granted(session, user, results)
    return CaptureResult(order_id=order_id, results=results)
