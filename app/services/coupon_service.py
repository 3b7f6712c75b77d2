# app/services/coupon_service.py
import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlmodel import Session, select

from app.models.coupon import Coupon, DiscountType

logger = logging.getLogger(__name__)


def is_coupon_applicable(coupon: Coupon, order_total_cents: int, now: Optional[datetime] = None) -> bool:
    now = now or datetime.utcnow()

    if not coupon.is_active:
        return False
    if coupon.start_date and coupon.start_date > now:
        return False
    if coupon.end_date and coupon.end_date < now:
        return False
    if coupon.max_uses is not None and coupon.used_count >= coupon.max_uses:
        return False
    if coupon.min_order_amount and order_total_cents < coupon.min_order_amount:
        return False
    return True


def calculate_discount(coupon: Coupon, order_total_cents: int, now: Optional[datetime] = None) -> int:
    """
    Discount in cents for an order total. 0 when the coupon does not apply.

    FIXED coupons never discount more than the total; PERCENTAGE coupons are
    rounded to the cent and capped by ``max_discount_amount``.
    """
    if order_total_cents <= 0 or not is_coupon_applicable(coupon, order_total_cents, now):
        return 0

    if coupon.discount_type == DiscountType.FIXED:
        return min(coupon.discount_amount, order_total_cents)

    discount = round(order_total_cents * coupon.discount_amount / 100)
    if coupon.max_discount_amount:
        discount = min(discount, coupon.max_discount_amount)
    return min(discount, order_total_cents)


def resolve_coupon(
    session: Session,
    code: Optional[str],
    order_total_cents: int,
) -> Tuple[Optional[Coupon], int]:
    """Look up a coupon code. Unknown or inapplicable codes give no discount."""
    if not code:
        return None, 0

    coupon = session.exec(
        select(Coupon).where(Coupon.code == code.strip().upper())
    ).first()
    if not coupon:
        logger.info(f"Coupon {code} not found")
        return None, 0

    discount = calculate_discount(coupon, order_total_cents)
    if discount == 0:
        logger.info(f"Coupon {coupon.code} not applicable to order of {order_total_cents}")
        return None, 0

    return coupon, discount


def prorate_discount(prices: list[int], discount_total: int) -> list[int]:
    """
    Split an order discount across item prices by their share of the total.

    Shares always add up to the discount (capped at the order total); the
    rounding remainder lands on the last item that still has room for it.
    """
    total = sum(prices)
    if discount_total <= 0 or total <= 0:
        return [0 for _ in prices]

    discount_total = min(discount_total, total)
    shares = [min(price, round(discount_total * price / total)) for price in prices]

    remainder = discount_total - sum(shares)
    for i in reversed(range(len(shares))):
        if remainder == 0:
            break
        # positive: add up to the item's price; negative: take back what was given
        step = min(remainder, prices[i] - shares[i]) if remainder > 0 else max(remainder, -shares[i])
        shares[i] += step
        remainder -= step
    return shares
