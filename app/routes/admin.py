from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from app.database import get_session
from app.dependencies.admin import require_admin
from app.schemas.subscription_schemas import GrantSubscriptionRequest
from app.services import subscription_service
from app.services.idempotency_ledger import purge_processed_events
from app.services.notification_service import list_admin_notifications
from app.services.paypal_client import get_payment_gateway

router = APIRouter(dependencies=[Depends(require_admin)])


@router.post("/subscriptions/grant")
def grant_subscription(
    data: GrantSubscriptionRequest,
    session: Session = Depends(get_session),
    gateway=Depends(get_payment_gateway),
):
    subscription = subscription_service.grant_subscription_manually(
        session,
        user_id=data.user_id,
        plan_id=data.plan_id,
        interval=data.interval,
        duration_days=data.duration_days,
        gateway=gateway,
    )
    return {
        "id": subscription.id,
        "status": subscription.status.value,
        "current_period_end": subscription.current_period_end,
    }


@router.post("/subscriptions/cleanup")
def cleanup_pending_subscriptions(session: Session = Depends(get_session)):
    return {"expired": subscription_service.cleanup_abandoned_pending_subscriptions(session)}


@router.post("/webhooks/purge")
def purge_webhook_events(older_than_days: int = 90, session: Session = Depends(get_session)):
    return {"deleted": purge_processed_events(session, older_than_days=older_than_days)}


@router.get("/notifications")
def admin_notifications(
    trigger_source: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    session: Session = Depends(get_session),
):
    return [
        {
            "id": n.id,
            "trigger_source": n.trigger_source,
            "related_id": n.related_id,
            "title": n.title,
            "content": n.content,
            "user_email": n.user_email,
            "created_at": n.created_at,
        }
        for n in list_admin_notifications(session, trigger_source=trigger_source, limit=limit)
    ]
