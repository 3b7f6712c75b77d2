# app/services/notification_service.py
"""Admin in-app notification rows: written by the dispatcher, read by the admin API."""
from typing import List, Optional

from sqlmodel import Session, select

from app.models.notifications import (
    Notification,
    NotificationChannel,
    NotificationStatus,
    RecipientRole,
)
from app.models.user import User


def create_notification(
    *,
    session: Session,
    recipient_role: RecipientRole,
    user: Optional[User],
    trigger_source: str,
    related_id: Optional[int],
    title: str,
    content: str,
    channel: NotificationChannel = NotificationChannel.system,
) -> Notification:
    """Add a row to the caller's transaction; the caller commits."""
    notification = Notification(
        recipient_role=recipient_role,
        user_id=getattr(user, "id", None),
        user_email=getattr(user, "email", None),
        trigger_source=trigger_source,
        related_id=related_id,
        title=title,
        content=content,
        channel=channel,
        status=NotificationStatus.sent,
    )
    session.add(notification)
    session.flush()
    return notification


def list_admin_notifications(
    session: Session,
    *,
    trigger_source: Optional[str] = None,
    limit: int = 50,
) -> List[Notification]:
    statement = select(Notification).where(Notification.recipient_role == RecipientRole.admin)
    if trigger_source:
        statement = statement.where(Notification.trigger_source == trigger_source)

    return list(
        session.exec(
            statement.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
        ).all()
    )
