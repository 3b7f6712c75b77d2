# app/services/activity_log_service.py

from datetime import datetime
from typing import Optional
from uuid import uuid4
from sqlmodel import Session
from app.models.activity_log import ActivityLog


def log_activity(
    session: Session,
    user_id: int,
    activity_type: str,
    meta: Optional[dict] = None,
    created_by: str = "system",
) -> ActivityLog:
    """
    Append-only audit log entry. Added to the caller's transaction, never committed here.
    """

    entry = ActivityLog(
        id=str(uuid4()),
        user_id=user_id,
        type=activity_type,
        meta=meta,
        created_by=created_by,
        created_at=datetime.utcnow(),
    )

    session.add(entry)
    return entry
