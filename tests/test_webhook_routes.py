from sqlmodel import select

from app.models.course import Course
from app.models.enrollment import Enrollment
from app.models.payment import Payment
from app.models.purchase import Purchase
from app.models.subscription import Subscription, SubscriptionPayment, SubscriptionStatus as S
from app.models.webhook_event import WebhookEvent


def capture_event(order_id="ORDER-1", event_id="WH-CAPTURE-1"):
    return {
        "id": event_id,
        "event_type": "PAYMENT.CAPTURE.COMPLETED",
        "resource": {
            "id": "CAPTURE-77",
            "status": "COMPLETED",
            "supplementary_data": {"related_ids": {"order_id": order_id}},
        },
    }


def subscription_event(event_type, paypal_id, event_id="WH-SUB-1", **resource):
    return {
        "id": event_id,
        "event_type": event_type,
        "resource": {"id": paypal_id, **resource},
    }


def _ledger(session):
    session.expire_all()
    return session.exec(select(WebhookEvent)).all()


# -------------------------
# verification
# -------------------------

def test_missing_headers_rejected(client, session, gateway):
    response = client.post("/webhooks/paypal", json=capture_event())

    assert response.status_code == 400
    assert response.json()["error"] == "Missing PayPal headers"
    assert gateway.verify_calls == []
    assert _ledger(session) == []


def test_bad_signature_changes_nothing(client, session, gateway, paypal_headers, make_user, make_course, make_purchase):
    purchase = make_purchase(make_user(), make_course())
    gateway.verify_result = False

    response = client.post("/webhooks/paypal", json=capture_event(), headers=paypal_headers)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid signature", "code": "signature_verification_failed"}
    assert _ledger(session) == []
    assert session.get(Purchase, purchase.id).status == "pending"


def test_verification_receives_transmission_headers(client, gateway, paypal_headers):
    client.post("/webhooks/paypal", json={"id": "WH-X", "event_type": "SOMETHING.ELSE"}, headers=paypal_headers)

    call = gateway.verify_calls[0]
    assert call["transmission_id"] == "TX-1"
    assert call["auth_algo"] == "SHA256withRSA"
    assert call["webhook_event"]["id"] == "WH-X"


# -------------------------
# purchases
# -------------------------

def test_capture_completed_fulfills_order(
    client, session, notifier, paypal_headers, make_user, make_course, make_purchase
):
    user = make_user()
    first = make_purchase(user, make_course())
    second = make_purchase(user, make_course())

    response = client.post("/webhooks/paypal", json=capture_event(), headers=paypal_headers)

    assert response.status_code == 200
    assert response.json() == {"received": True, "fulfilled": 2}

    session.expire_all()
    assert {p.status for p in session.exec(select(Purchase)).all()} == {"paid"}
    assert len(session.exec(select(Enrollment)).all()) == 2
    payments = session.exec(select(Payment)).all()
    assert {p.purchase_id for p in payments} == {first.id, second.id}
    assert {p.provider_ref for p in payments} == {"CAPTURE-77"}
    assert notifier.names() == ["purchase_confirmed", "enrollment_granted"]


def test_redelivery_is_acknowledged_as_duplicate(
    client, session, notifier, paypal_headers, make_user, make_course, make_purchase
):
    make_purchase(make_user(), make_course(inventory=3))

    first = client.post("/webhooks/paypal", json=capture_event(), headers=paypal_headers)
    second = client.post("/webhooks/paypal", json=capture_event(), headers=paypal_headers)

    assert first.json()["fulfilled"] == 1
    assert second.status_code == 200
    assert second.json() == {"received": True, "duplicate": True}
    assert len(_ledger(session)) == 1
    assert session.exec(select(Course)).one().inventory == 2
    assert notifier.names() == ["purchase_confirmed", "enrollment_granted"]


def test_capture_after_redirect_capture_applies_nothing(
    client, session, notifier, paypal_headers, make_user, make_course, make_purchase
):
    make_purchase(make_user(), make_course(), status="paid")

    response = client.post("/webhooks/paypal", json=capture_event(), headers=paypal_headers)

    assert response.json() == {"received": True, "fulfilled": 0}
    assert session.exec(select(Payment)).all() == []
    assert notifier.calls == []


def test_out_of_stock_releases_event_for_redelivery(
    client, session, notifier, paypal_headers, make_user, make_course, make_purchase
):
    course = make_course(inventory=0)
    purchase = make_purchase(make_user(), course)

    response = client.post("/webhooks/paypal", json=capture_event(), headers=paypal_headers)

    assert response.status_code == 500
    assert response.json() == {"received": False, "error": "Processing failed"}
    assert _ledger(session) == []
    assert session.get(Purchase, purchase.id).status == "pending"
    assert notifier.names() == ["fulfillment_failed"]
    assert notifier.calls[0][2]["purchase_id"] == purchase.id

    # seat restocked by an admin; PayPal's retry goes through
    course = session.get(Course, course.id)
    course.inventory = 1
    session.add(course)
    session.commit()

    retry = client.post("/webhooks/paypal", json=capture_event(), headers=paypal_headers)
    assert retry.json() == {"received": True, "fulfilled": 1}


def test_unknown_event_is_acknowledged(client, session, paypal_headers):
    response = client.post(
        "/webhooks/paypal",
        json={"id": "WH-9", "event_type": "CUSTOMER.DISPUTE.CREATED", "resource": {"id": "D-1"}},
        headers=paypal_headers,
    )

    assert response.json() == {"received": True}
    assert [e.event_type for e in _ledger(session)] == ["CUSTOMER.DISPUTE.CREATED"]


def test_event_without_id_uses_derived_key(client, session, paypal_headers):
    event = {"event_type": "CUSTOMER.DISPUTE.CREATED", "resource": {"id": "D-1"}}

    client.post("/webhooks/paypal", json=event, headers=paypal_headers)

    assert _ledger(session)[0].event_id == "CUSTOMER.DISPUTE.CREATED:D-1:TX-1"


# -------------------------
# subscriptions
# -------------------------

def test_subscription_activated(
    client, session, gateway, notifier, paypal_headers, make_user, make_plan, make_subscription
):
    user = make_user()
    plan = make_plan()
    old = make_subscription(user, plan, S.active, paypal_subscription_id="I-OLD")
    new = make_subscription(user, plan, S.pending)

    event = subscription_event(
        "BILLING.SUBSCRIPTION.ACTIVATED",
        "I-NEW",
        custom_id=str(new.id),
        plan_id=plan.paypal_monthly_plan_id,
        start_time="2026-05-01T00:00:00Z",
        billing_info={"next_billing_time": "2026-06-01T00:00:00Z"},
    )
    response = client.post("/webhooks/paypal", json=event, headers=paypal_headers)

    assert response.status_code == 200
    session.expire_all()
    activated = session.get(Subscription, new.id)
    assert activated.status == S.active
    assert activated.paypal_subscription_id == "I-NEW"
    assert session.get(Subscription, old.id).status == S.expired
    assert gateway.cancelled == [("I-OLD", "Replaced by new subscription")]
    assert notifier.names() == ["subscription_activated"]


def test_subscription_cancelled_then_expired(
    client, session, paypal_headers, make_user, make_plan, make_subscription
):
    sub = make_subscription(make_user(), make_plan(), S.active, paypal_subscription_id="I-1")

    client.post(
        "/webhooks/paypal",
        json=subscription_event("BILLING.SUBSCRIPTION.CANCELLED", "I-1", event_id="WH-1"),
        headers=paypal_headers,
    )
    session.expire_all()
    cancelled = session.get(Subscription, sub.id)
    assert cancelled.status == S.cancelled
    assert cancelled.cancel_at_period_end is True

    client.post(
        "/webhooks/paypal",
        json=subscription_event("BILLING.SUBSCRIPTION.EXPIRED", "I-1", event_id="WH-2"),
        headers=paypal_headers,
    )
    session.expire_all()
    assert session.get(Subscription, sub.id).status == S.expired


def test_payment_failure_marks_past_due(client, session, paypal_headers, make_user, make_plan, make_subscription):
    sub = make_subscription(make_user(), make_plan(), S.active, paypal_subscription_id="I-1")

    client.post(
        "/webhooks/paypal",
        json=subscription_event("BILLING.SUBSCRIPTION.PAYMENT.FAILED", "I-1"),
        headers=paypal_headers,
    )

    session.expire_all()
    assert session.get(Subscription, sub.id).status == S.past_due


def test_suspension_expires_the_subscription(
    client, session, paypal_headers, make_user, make_plan, make_subscription
):
    sub = make_subscription(make_user(), make_plan(), S.past_due, paypal_subscription_id="I-1")

    response = client.post(
        "/webhooks/paypal",
        json=subscription_event("BILLING.SUBSCRIPTION.SUSPENDED", "I-1"),
        headers=paypal_headers,
    )

    assert response.json() == {"received": True}
    session.expire_all()
    assert session.get(Subscription, sub.id).status == S.expired


def test_invalid_transition_is_acknowledged_and_kept(
    client, session, paypal_headers, make_user, make_plan, make_subscription
):
    sub = make_subscription(make_user(), make_plan(), S.expired, paypal_subscription_id="I-1")

    response = client.post(
        "/webhooks/paypal",
        json=subscription_event("BILLING.SUBSCRIPTION.PAYMENT.FAILED", "I-1"),
        headers=paypal_headers,
    )

    assert response.status_code == 200
    assert response.json() == {"received": True, "ignored": "invalid_transition"}
    assert len(_ledger(session)) == 1
    assert session.get(Subscription, sub.id).status == S.expired


def test_unknown_subscription_is_acknowledged(client, paypal_headers):
    response = client.post(
        "/webhooks/paypal",
        json=subscription_event("BILLING.SUBSCRIPTION.CANCELLED", "I-MISSING"),
        headers=paypal_headers,
    )

    assert response.json() == {"received": True}


def test_sale_completed_records_renewal(
    client, session, gateway, paypal_headers, make_user, make_plan, make_subscription
):
    sub = make_subscription(make_user(), make_plan(), S.active, paypal_subscription_id="I-1")
    gateway.subscriptions["I-1"] = {"billing_info": {"next_billing_time": "2030-03-01T00:00:00Z"}}

    event = {
        "id": "WH-SALE-1",
        "event_type": "PAYMENT.SALE.COMPLETED",
        "resource": {
            "id": "SALE-1",
            "billing_agreement_id": "I-1",
            "amount": {"total": "29.00", "currency_code": "USD"},
        },
    }
    response = client.post("/webhooks/paypal", json=event, headers=paypal_headers)

    assert response.status_code == 200
    session.expire_all()
    payment = session.exec(select(SubscriptionPayment)).one()
    assert payment.amount_cents == 2900
    assert payment.currency == "usd"
    assert payment.subscription_id == sub.id


def test_sale_completed_gateway_outage_is_retried(
    client, session, gateway, gateway_down, paypal_headers, make_user, make_plan, make_subscription
):
    make_subscription(make_user(), make_plan(), S.active, paypal_subscription_id="I-1")
    gateway.fetch_error = gateway_down

    event = {
        "id": "WH-SALE-1",
        "event_type": "PAYMENT.SALE.COMPLETED",
        "resource": {
            "id": "SALE-1",
            "billing_agreement_id": "I-1",
            "amount": {"total": "29.00", "currency_code": "USD"},
        },
    }
    response = client.post("/webhooks/paypal", json=event, headers=paypal_headers)

    assert response.status_code == 500
    assert _ledger(session) == []
    assert session.exec(select(SubscriptionPayment)).all() == []
