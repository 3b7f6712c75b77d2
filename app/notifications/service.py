# app/notifications/service.py
"""
Commerce-facing notification surface.

Every method is fire-and-forget: it returns normally whatever happens to
the email or in-app row underneath, so a broken mail provider can never
undo or fail a purchase, a subscription change or a certificate.
"""
import logging
from typing import Iterable, Optional

from sqlmodel import Session

from app.config import settings
from app.models.user import User
from app.notifications.dispatcher import dispatch_commerce_event
from app.notifications.events import CommerceEvent

logger = logging.getLogger(__name__)


def _money(amount_cents: int, currency: str) -> str:
    return f"{amount_cents / 100:.2f} {currency.upper()}"


class NotificationService:

    def _dispatch(self, event: CommerceEvent, **kwargs) -> None:
        try:
            dispatch_commerce_event(event=event, **kwargs)
        except Exception:
            logger.exception(f"Notification {event.value} failed")

    def purchase_confirmed(self, session: Session, user: User, results: Iterable) -> None:
        results = [r for r in results if r.applied]
        if not results:
            return

        total = sum(r.amount_cents for r in results)
        currency = results[0].currency
        titles = [r.course_title for r in results]

        self._dispatch(
            CommerceEvent.PURCHASE_CONFIRMED,
            user=user,
            session=session,
            related_id=results[0].purchase_id,
            extra={
                "user_template": "user_emails/purchase_confirmation.html",
                "user_subject": "Your purchase is confirmed",
                "admin_template": "admin_emails/purchase_completed.html",
                "admin_subject": f"New purchase by {user.email}",
                "admin_title": "Purchase completed",
                "admin_content": f"{user.email} bought {', '.join(titles)} ({_money(total, currency)})",
                "course_titles": titles,
                "total": _money(total, currency),
            },
        )

    def enrollment_granted(self, session: Session, user: User, results: Iterable) -> None:
        for result in results:
            if not result.applied:
                continue
            self._dispatch(
                CommerceEvent.ENROLLMENT_GRANTED,
                user=user,
                session=session,
                related_id=result.course_id,
                notify_admin=False,
                extra={
                    "user_template": "user_emails/enrollment.html",
                    "user_subject": f"You're enrolled in {result.course_title}",
                    "course_title": result.course_title,
                    "course_url": f"{settings.APP_URL}/courses/{result.course_id}",
                },
            )

    def purchase_failed(
        self,
        session: Session,
        user: Optional[User],
        *,
        order_id: Optional[str],
        reason: str,
    ) -> None:
        self._dispatch(
            CommerceEvent.PURCHASE_FAILED,
            user=user,
            session=session,
            extra={
                "user_template": "user_emails/purchase_failed.html",
                "user_subject": "We couldn't complete your purchase",
                "admin_title": "Payment capture failed",
                "admin_content": f"Order {order_id}: {reason}",
                "order_id": order_id,
                "reason": reason,
                "retry_url": f"{settings.APP_URL}/checkout",
            },
        )

    def fulfillment_failed(
        self,
        session: Session,
        *,
        order_id: Optional[str],
        purchase_id: Optional[int],
        reason: str,
        user: Optional[User] = None,
    ) -> None:
        """Admin-only alert for a paid order that could not be fulfilled."""
        self._dispatch(
            CommerceEvent.FULFILLMENT_FAILED,
            user=user,
            session=session,
            related_id=purchase_id,
            notify_user=False,
            extra={
                "admin_template": "admin_emails/fulfillment_failed.html",
                "admin_subject": f"Manual reconciliation needed for order {order_id}",
                "admin_title": "Fulfillment failed",
                "admin_content": f"Order {order_id}, purchase {purchase_id}: {reason}",
                "order_id": order_id,
                "purchase_id": purchase_id,
                "reason": reason,
            },
        )

    def subscription_activated(self, session: Session, user: User, subscription, plan) -> None:
        self._dispatch(
            CommerceEvent.SUBSCRIPTION_ACTIVATED,
            user=user,
            session=session,
            related_id=subscription.id,
            extra={
                "user_template": "user_emails/subscription_activated.html",
                "user_subject": f"Your {plan.name if plan else ''} subscription is active",
                "admin_title": "Subscription activated",
                "admin_content": f"{user.email} activated subscription {subscription.id}",
                "plan_name": plan.name if plan else None,
                "period_end": subscription.current_period_end,
            },
        )

    def certificate_issued(self, session: Session, user: User, certificate, achievement_title: str) -> None:
        self._dispatch(
            CommerceEvent.CERTIFICATE_ISSUED,
            user=user,
            session=session,
            related_id=certificate.id,
            notify_admin=False,
            extra={
                "user_template": "user_emails/certificate_issued.html",
                "user_subject": f"Your certificate for {achievement_title}",
                "achievement_title": achievement_title,
                "certificate_id": certificate.certificate_id,
                "verify_url": f"{settings.APP_URL}/certificates/{certificate.certificate_id}/verify",
            },
        )


notification_service = NotificationService()


def get_notifier() -> NotificationService:
    return notification_service
