import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from sqlmodel import Session

from app.config import settings
from app.database import get_session
from app.dependencies.admin import require_customer
from app.errors import CommerceError
from app.models.user import User
from app.notifications.service import NotificationService, get_notifier
from app.schemas.checkout_schemas import CartCheckoutRequest, CheckoutResponse
from app.services.checkout_service import (
    capture_checkout,
    create_cart_checkout,
    create_learning_path_checkout,
)
from app.services.paypal_client import get_payment_gateway

logger = logging.getLogger(__name__)

router = APIRouter()

# where a failed capture sends the buyer, by checkout source
FAILURE_PAGES = {"courses": "/courses", "learning-paths": "/learning-paths"}


def _parse_purchase_ids(raw: Optional[str]) -> Optional[List[int]]:
    if not raw:
        return None
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        logger.warning(f"Ignoring malformed purchases parameter {raw!r}")
        return None


@router.post("/checkout/cart", response_model=CheckoutResponse)
def checkout_cart(
    data: CartCheckoutRequest,
    session: Session = Depends(get_session),
    user: User = Depends(require_customer),
    gateway=Depends(get_payment_gateway),
):
    result = create_cart_checkout(
        session,
        user,
        data.course_ids,
        gateway,
        coupon_code=data.coupon_code,
    )
    return CheckoutResponse(**result.__dict__)


@router.post("/checkout/learning-paths/{path_id}", response_model=CheckoutResponse)
def checkout_learning_path(
    path_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(require_customer),
    gateway=Depends(get_payment_gateway),
):
    result = create_learning_path_checkout(session, user, path_id, gateway)
    return CheckoutResponse(**result.__dict__)


@router.get("/payments/paypal/capture")
def paypal_capture(
    token: Optional[str] = None,
    purchases: Optional[str] = None,
    source: Optional[str] = None,
    session: Session = Depends(get_session),
    gateway=Depends(get_payment_gateway),
    notifier: NotificationService = Depends(get_notifier),
):
    base_url = settings.APP_URL.rstrip("/")
    if not token:
        return RedirectResponse(f"{base_url}/courses", status_code=302)

    try:
        result = capture_checkout(
            session,
            token,
            gateway,
            notifier,
            purchase_ids=_parse_purchase_ids(purchases),
        )
    except CommerceError as exc:
        logger.error(f"Capture of PayPal order {token} failed: {exc.detail}")
        failure_page = FAILURE_PAGES.get(source, "/courses")
        return RedirectResponse(f"{base_url}{failure_page}?checkout=failed", status_code=302)

    logger.info(f"Captured PayPal order {token}, {result.applied_count} purchases fulfilled")
    return RedirectResponse(f"{base_url}/dashboard?checkout=success", status_code=302)
