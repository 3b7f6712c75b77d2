# app/services/idempotency_ledger.py
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from app.models.webhook_event import WebhookEvent

logger = logging.getLogger(__name__)


@dataclass
class LedgerResult:
    registered: bool
    event_id: str


def related_order_id(event: dict) -> Optional[str]:
    resource = event.get("resource") or {}
    related = (resource.get("supplementary_data") or {}).get("related_ids") or {}
    return related.get("order_id") or resource.get("id")


def compute_event_key(event: dict, transmission_id: str) -> str:
    """
    Stable ledger key for an event.

    The provider's own event id when present, otherwise
    ``<event_type>:<resource_id>:<transmission_id>``.
    """
    if event.get("id"):
        return str(event["id"])

    resource = event.get("resource") or {}
    resource_id = resource.get("id") or related_order_id(event) or "unknown-resource"
    event_type = event.get("event_type") or "unknown-event"
    return f"{event_type}:{resource_id}:{transmission_id}"


def register_event(
    session: Session,
    *,
    provider: str,
    event_id: str,
    event_type: Optional[str],
    payload: Optional[Any] = None,
    transmission_id: Optional[str] = None,
) -> LedgerResult:
    """
    Record an event as processed.

    A unique-constraint conflict on (provider, event_id) means the event was
    seen before: ``registered=False``. Any other failure propagates.
    """
    record = WebhookEvent(
        provider=provider,
        event_id=event_id,
        event_type=event_type or "unknown",
        transmission_id=transmission_id,
        payload=payload,
    )
    session.add(record)

    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        logger.info(f"Duplicate {provider} event {event_id}, skipping")
        return LedgerResult(registered=False, event_id=event_id)

    return LedgerResult(registered=True, event_id=event_id)


def release_event(session: Session, *, provider: str, event_id: str) -> None:
    """Forget a registered event so a redelivery is processed again."""
    session.rollback()
    session.execute(
        delete(WebhookEvent).where(
            WebhookEvent.provider == provider,
            WebhookEvent.event_id == event_id,
        )
    )
    session.commit()
    logger.warning(f"Released {provider} event {event_id} for redelivery")


def purge_processed_events(session: Session, *, older_than_days: int = 90) -> int:
    cutoff = datetime.utcnow() - timedelta(days=older_than_days)
    result = session.execute(
        delete(WebhookEvent).where(WebhookEvent.processed_at < cutoff)
    )
    session.commit()
    return result.rowcount or 0
