from datetime import datetime, timedelta

from sqlmodel import select

from app.models.webhook_event import WebhookEvent
from app.services.idempotency_ledger import (
    compute_event_key,
    purge_processed_events,
    register_event,
    related_order_id,
    release_event,
)


def test_event_key_prefers_provider_id():
    assert compute_event_key({"id": "WH-1", "event_type": "X"}, "TX-9") == "WH-1"


def test_event_key_falls_back_to_type_resource_and_transmission():
    event = {"event_type": "PAYMENT.CAPTURE.COMPLETED", "resource": {"id": "CAP-1"}}
    assert compute_event_key(event, "TX-9") == "PAYMENT.CAPTURE.COMPLETED:CAP-1:TX-9"

    assert compute_event_key({}, "TX-9") == "unknown-event:unknown-resource:TX-9"


def test_related_order_id_reads_supplementary_data():
    event = {
        "resource": {
            "id": "CAP-1",
            "supplementary_data": {"related_ids": {"order_id": "ORDER-7"}},
        }
    }
    assert related_order_id(event) == "ORDER-7"
    assert related_order_id({"resource": {"id": "CAP-1"}}) == "CAP-1"


def test_second_registration_is_a_duplicate(session):
    first = register_event(session, provider="paypal", event_id="WH-1", event_type="X")
    second = register_event(session, provider="paypal", event_id="WH-1", event_type="X")

    assert first.registered is True
    assert second.registered is False
    assert len(session.exec(select(WebhookEvent)).all()) == 1


def test_same_event_id_from_another_provider_is_independent(session):
    register_event(session, provider="paypal", event_id="WH-1", event_type="X")
    other = register_event(session, provider="stripe", event_id="WH-1", event_type="X")

    assert other.registered is True


def test_released_event_can_register_again(session):
    register_event(session, provider="paypal", event_id="WH-1", event_type="X")
    release_event(session, provider="paypal", event_id="WH-1")

    again = register_event(session, provider="paypal", event_id="WH-1", event_type="X")
    assert again.registered is True


def test_purge_removes_only_old_rows(session):
    session.add(WebhookEvent(
        provider="paypal",
        event_id="old",
        event_type="X",
        processed_at=datetime.utcnow() - timedelta(days=120),
    ))
    session.add(WebhookEvent(provider="paypal", event_id="new", event_type="X"))
    session.commit()

    assert purge_processed_events(session, older_than_days=90) == 1
    remaining = session.exec(select(WebhookEvent.event_id)).all()
    assert remaining == ["new"]
