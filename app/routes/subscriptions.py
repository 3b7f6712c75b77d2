from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.database import get_session
from app.models.subscription import Subscription, SubscriptionPlan
from app.models.user import User
from app.schemas.subscription_schemas import SubscriptionOut
from app.services import subscription_service
from app.services.paypal_client import get_payment_gateway
from app.utils.token import get_current_user

router = APIRouter()


def _to_out(session: Session, subscription: Subscription) -> SubscriptionOut:
    plan = session.get(SubscriptionPlan, subscription.plan_id)
    return SubscriptionOut(
        id=subscription.id,
        status=subscription.status.value,
        interval=subscription.interval.value,
        plan_id=subscription.plan_id,
        plan_name=plan.name if plan else None,
        tier=plan.tier.value if plan else None,
        current_period_start=subscription.current_period_start,
        current_period_end=subscription.current_period_end,
        cancel_at_period_end=subscription.cancel_at_period_end,
    )


@router.get("/current")
def current_subscription(
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    gateway=Depends(get_payment_gateway),
):
    subscription = subscription_service.get_user_subscription(session, user.id, gateway=gateway)
    if not subscription:
        return {"subscription": None}
    return {"subscription": _to_out(session, subscription)}


@router.post("/{subscription_id}/cancel")
def cancel(
    subscription_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    gateway=Depends(get_payment_gateway),
):
    subscription = subscription_service.cancel_subscription(
        session, subscription_id, gateway, user_id=user.id
    )
    return {"subscription": _to_out(session, subscription)}
