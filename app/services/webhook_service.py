# app/services/webhook_service.py
"""
PayPal webhook ingestion.

verify signature -> register in the idempotency ledger -> dispatch.

A registered event that fails unexpectedly is released from the ledger
before the error propagates, so PayPal's redelivery gets processed instead
of being swallowed as a duplicate.
"""
import logging
from typing import Mapping, Optional

from sqlmodel import Session

from app.errors import InvalidStateTransition, OutOfStock, SignatureVerificationFailed
from app.models.subscription import SubscriptionPlan
from app.models.user import User
from app.services import subscription_service
from app.services.fulfillment_service import fulfill_order
from app.services.idempotency_ledger import (
    compute_event_key,
    register_event,
    related_order_id,
    release_event,
)

logger = logging.getLogger(__name__)

PROVIDER = "paypal"

REQUIRED_HEADERS = (
    "paypal-transmission-id",
    "paypal-transmission-time",
    "paypal-transmission-sig",
    "paypal-cert-url",
    "paypal-auth-algo",
)

SUBSCRIPTION_ACTIVATED = ("BILLING.SUBSCRIPTION.ACTIVATED", "BILLING.SUBSCRIPTION.UPDATED")
SUBSCRIPTION_CANCELLED = "BILLING.SUBSCRIPTION.CANCELLED"
# a suspended agreement stops billing and ends access
SUBSCRIPTION_EXPIRED = ("BILLING.SUBSCRIPTION.EXPIRED", "BILLING.SUBSCRIPTION.SUSPENDED")
SUBSCRIPTION_PAST_DUE = "BILLING.SUBSCRIPTION.PAYMENT.FAILED"
SALE_COMPLETED = "PAYMENT.SALE.COMPLETED"
CAPTURE_COMPLETED = "PAYMENT.CAPTURE.COMPLETED"


def _amount_cents(value: Optional[str]) -> Optional[int]:
    try:
        return round(float(value) * 100)
    except (TypeError, ValueError):
        return None


class WebhookIngestor:

    def __init__(self, gateway, notifier):
        self.gateway = gateway
        self.notifier = notifier

    def verify(self, event: dict, headers: Mapping[str, str]) -> str:
        values = {name: headers.get(name) for name in REQUIRED_HEADERS}
        missing = [name for name, value in values.items() if not value]
        if missing:
            logger.error(f"PayPal webhook missing headers: {missing}")
            raise SignatureVerificationFailed("Missing PayPal headers")

        verified = self.gateway.verify_webhook_signature(
            transmission_id=values["paypal-transmission-id"],
            transmission_time=values["paypal-transmission-time"],
            transmission_sig=values["paypal-transmission-sig"],
            cert_url=values["paypal-cert-url"],
            auth_algo=values["paypal-auth-algo"],
            webhook_event=event,
        )
        if not verified:
            logger.error("PayPal webhook signature verification failed")
            raise SignatureVerificationFailed("Invalid signature")

        return values["paypal-transmission-id"]

    def ingest(self, session: Session, event: dict, headers: Mapping[str, str]) -> dict:
        event_type = event.get("event_type")
        logger.info(f"PayPal webhook received: {event_type}")

        transmission_id = self.verify(event, headers)
        event_id = compute_event_key(event, transmission_id)

        ledger = register_event(
            session,
            provider=PROVIDER,
            event_id=event_id,
            event_type=event_type,
            payload=event,
            transmission_id=transmission_id,
        )
        if not ledger.registered:
            return {"received": True, "duplicate": True}

        try:
            return self.dispatch(session, event)
        except InvalidStateTransition as exc:
            # a redelivery cannot make this transition legal
            logger.warning(f"Ignoring {event_type} {event_id}: {exc.detail}")
            return {"received": True, "ignored": "invalid_transition"}
        except Exception:
            logger.exception(f"Processing {event_type} {event_id} failed")
            release_event(session, provider=PROVIDER, event_id=event_id)
            raise

    # -------------------------
    # dispatch
    # -------------------------

    def dispatch(self, session: Session, event: dict) -> dict:
        event_type = event.get("event_type") or ""
        resource = event.get("resource") or {}

        if event_type.startswith("BILLING.SUBSCRIPTION."):
            return self._subscription_event(session, event_type, resource)
        if event_type == SALE_COMPLETED:
            return self._sale_completed(session, resource)
        if event_type == CAPTURE_COMPLETED:
            return self._capture_completed(session, event)

        logger.info(f"Ignoring unhandled PayPal event {event_type}")
        return {"received": True}

    def _subscription_event(self, session: Session, event_type: str, resource: dict) -> dict:
        if not resource:
            logger.warning(f"{event_type} without resource payload")
            return {"received": True}

        subscription = subscription_service.resolve_subscription(session, resource)
        if not subscription:
            logger.warning(f"{event_type} for unknown subscription {resource.get('id')}")
            return {"received": True}

        if event_type in SUBSCRIPTION_ACTIVATED:
            start, end = subscription_service.period_from_resource(resource)
            activation = subscription_service.activate_subscription(
                session,
                subscription.id,
                gateway=self.gateway,
                paypal_subscription_id=resource.get("id"),
                current_period_start=start,
                current_period_end=end,
                paypal_plan_id=resource.get("plan_id"),
            )
            activated = activation.subscription
            user = session.get(User, activated.user_id)
            if user:
                plan = session.get(SubscriptionPlan, activated.plan_id)
                self.notifier.subscription_activated(session, user, activated, plan)
        elif event_type == SUBSCRIPTION_CANCELLED:
            subscription_service.mark_cancelled(session, subscription.id)
        elif event_type in SUBSCRIPTION_EXPIRED:
            subscription_service.mark_expired(session, subscription.id)
        elif event_type == SUBSCRIPTION_PAST_DUE:
            subscription_service.mark_past_due(session, subscription.id)
        else:
            logger.info(f"Ignoring subscription event {event_type}")

        return {"received": True}

    def _sale_completed(self, session: Session, resource: dict) -> dict:
        amount = resource.get("amount") or {}
        amount_cents = _amount_cents(amount.get("total"))
        currency = amount.get("currency_code")
        paypal_subscription_id = resource.get("billing_agreement_id")

        if amount_cents is None or not currency or not paypal_subscription_id:
            logger.warning("PAYMENT.SALE.COMPLETED without amount or subscription reference")
            return {"received": True}

        subscription_service.record_recurring_payment(
            session,
            paypal_subscription_id,
            sale_id=resource.get("id"),
            amount_cents=amount_cents,
            currency=currency,
            gateway=self.gateway,
        )
        return {"received": True}

    def _capture_completed(self, session: Session, event: dict) -> dict:
        order_id = related_order_id(event)
        if not order_id:
            logger.warning("PAYMENT.CAPTURE.COMPLETED without order id")
            return {"received": True}

        capture_ref = (event.get("resource") or {}).get("id")
        try:
            results = fulfill_order(session, order_id, payment_ref=capture_ref)
        except OutOfStock as exc:
            self.notifier.fulfillment_failed(
                session,
                order_id=order_id,
                purchase_id=exc.purchase_id,
                reason=exc.detail,
            )
            raise

        if not results:
            logger.info(f"No purchases for PayPal order {order_id}")
            return {"received": True}

        applied = [r for r in results if r.applied]
        if applied:
            user = session.get(User, applied[0].user_id)
            if user:
                self.notifier.purchase_confirmed(session, user, applied)
                self.notifier.enrollment_granted(session, user, applied)

        return {"received": True, "fulfilled": len(applied)}
