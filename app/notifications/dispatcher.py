import logging

from app.notifications.rules import NOTIFICATION_RULES
from app.notifications.channels import Channel
from app.notifications.email_handlers import send_user_email, send_admin_email
from app.services.notification_service import create_notification
from app.models.notifications import RecipientRole
from app.notifications.events import CommerceEvent

logger = logging.getLogger(__name__)


def dispatch_commerce_event(
    *,
    event: CommerceEvent,
    user,
    session,
    related_id=None,
    extra: dict | None = None,
    notify_user: bool = True,
    notify_admin: bool = True,
):
    """
    Central notification dispatcher.

    Handles:
    - user email
    - admin email
    - admin in-app notifications

    Each channel is best-effort: failures are logged and never raised.
    """

    rules = NOTIFICATION_RULES.get(event, {})
    extra = extra or {}
    delivered = []

    # -------------------------
    # ADMIN IN-APP NOTIFICATION
    # -------------------------
    if notify_admin and rules.get(Channel.INAPP_ADMIN) and session is not None:
        try:
            create_notification(
                session=session,
                recipient_role=RecipientRole.admin,
                user=user,
                trigger_source=event.value,
                related_id=related_id,
                title=extra.get("admin_title", event.value.replace("_", " ").title()),
                content=extra.get("admin_content", ""),
            )
            session.commit()
            delivered.append(Channel.INAPP_ADMIN)
        except Exception:
            session.rollback()
            logger.exception(f"Admin notification failed for {event.value}")

    # -------------------------
    # USER EMAIL
    # -------------------------
    if notify_user and rules.get(Channel.EMAIL_USER) and user is not None:
        try:
            if send_user_email(
                template=extra["user_template"],
                subject=extra["user_subject"],
                user=user,
                **extra,
            ):
                delivered.append(Channel.EMAIL_USER)
        except Exception:
            logger.exception(f"User email failed for {event.value}")

    # -------------------------
    # ADMIN EMAIL
    # -------------------------
    if notify_admin and rules.get(Channel.EMAIL_ADMIN) and extra.get("admin_template"):
        try:
            if send_admin_email(
                template=extra["admin_template"],
                subject=extra["admin_subject"],
                **extra,
            ):
                delivered.append(Channel.EMAIL_ADMIN)
        except Exception:
            logger.exception(f"Admin email failed for {event.value}")

    return delivered
