# app/services/subscription_service.py
"""
Subscription lifecycle.

Every status write goes through ``assert_transition``; an illegal move
raises ``InvalidStateTransition`` before anything is written.

Activation also enforces "one current subscription per buyer": every other
non-terminal subscription of the same user is expired in the same local
transaction. The gateway is told to stop billing the displaced ones only
after that commit, and only as a courtesy.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy import and_, or_
from sqlmodel import Session, select

from app.constants.subscription_status import ENTITLED_STATUSES, NON_TERMINAL_STATUSES
from app.errors import Forbidden, NotFound, UpstreamGatewayFailure
from app.models.subscription import (
    SUBSCRIPTION_TIERS,
    Subscription,
    SubscriptionInterval,
    SubscriptionPayment,
    SubscriptionPlan,
    SubscriptionStatus,
    SubscriptionTier,
)
from app.services.activity_log_service import log_activity
from app.services.subscription_state import assert_transition

logger = logging.getLogger(__name__)

PENDING_GRACE = timedelta(hours=24)
DEFAULT_PERIOD = timedelta(days=31)
REPLACED_REASON = "Replaced by new subscription"


@dataclass
class ActivationResult:
    subscription: Subscription
    displaced_ids: List[int] = field(default_factory=list)
    gateway_cancel_failures: List[str] = field(default_factory=list)


# -------------------------
# helpers
# -------------------------

def parse_gateway_time(value: Optional[str]) -> Optional[datetime]:
    """PayPal ISO-8601 timestamp -> naive UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable gateway timestamp {value!r}")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def period_from_resource(resource: dict, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    now = now or datetime.utcnow()
    start = parse_gateway_time(resource.get("start_time")) or now
    end = parse_gateway_time((resource.get("billing_info") or {}).get("next_billing_time"))
    return start, end or now + DEFAULT_PERIOD


def get_subscription(session: Session, subscription_id: int) -> Subscription:
    subscription = session.get(Subscription, subscription_id)
    if not subscription:
        raise NotFound(f"Subscription {subscription_id} not found")
    return subscription


def find_by_paypal_id(session: Session, paypal_subscription_id: Optional[str]) -> Optional[Subscription]:
    if not paypal_subscription_id:
        return None
    return session.exec(
        select(Subscription).where(Subscription.paypal_subscription_id == paypal_subscription_id)
    ).first()


def resolve_subscription(session: Session, resource: dict) -> Optional[Subscription]:
    """Local subscription for a gateway resource: ``custom_id`` first, then the gateway id."""
    custom_id = resource.get("custom_id")
    if custom_id:
        try:
            subscription = session.get(Subscription, int(custom_id))
        except (TypeError, ValueError):
            subscription = None
        if subscription:
            return subscription
    return find_by_paypal_id(session, resource.get("id"))


def _set_status(subscription: Subscription, status: SubscriptionStatus) -> None:
    assert_transition(subscription.status, status)
    subscription.status = SubscriptionStatus(status)
    subscription.updated_at = datetime.utcnow()


def _sync_plan(session: Session, subscription: Subscription, paypal_plan_id: Optional[str]) -> None:
    if not paypal_plan_id:
        return

    plan = session.exec(
        select(SubscriptionPlan).where(
            or_(
                SubscriptionPlan.paypal_monthly_plan_id == paypal_plan_id,
                SubscriptionPlan.paypal_annual_plan_id == paypal_plan_id,
            )
        )
    ).first()
    if not plan:
        logger.warning(f"No local plan for PayPal plan {paypal_plan_id}")
        return

    subscription.plan_id = plan.id
    subscription.interval = (
        SubscriptionInterval.annual
        if plan.paypal_annual_plan_id == paypal_plan_id
        else SubscriptionInterval.monthly
    )


def _apply_fields(
    session: Session,
    subscription: Subscription,
    *,
    paypal_subscription_id: Optional[str] = None,
    current_period_start: Optional[datetime] = None,
    current_period_end: Optional[datetime] = None,
    paypal_plan_id: Optional[str] = None,
) -> None:
    if paypal_subscription_id:
        subscription.paypal_subscription_id = paypal_subscription_id
    if current_period_start:
        subscription.current_period_start = current_period_start
    if current_period_end:
        subscription.current_period_end = current_period_end
    _sync_plan(session, subscription, paypal_plan_id)


# -------------------------
# status writes
# -------------------------

def update_subscription(
    session: Session,
    subscription_id: int,
    status: SubscriptionStatus,
    *,
    paypal_subscription_id: Optional[str] = None,
    current_period_start: Optional[datetime] = None,
    current_period_end: Optional[datetime] = None,
    paypal_plan_id: Optional[str] = None,
) -> Subscription:
    subscription = get_subscription(session, subscription_id)

    try:
        _set_status(subscription, status)
        _apply_fields(
            session,
            subscription,
            paypal_subscription_id=paypal_subscription_id,
            current_period_start=current_period_start,
            current_period_end=current_period_end,
            paypal_plan_id=paypal_plan_id,
        )
        session.add(subscription)
        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(subscription)
    return subscription


def _displace_others(
    session: Session, subscription: Subscription
) -> Tuple[List[Subscription], List[Subscription]]:
    others = session.exec(
        select(Subscription).where(
            Subscription.user_id == subscription.user_id,
            Subscription.id != subscription.id,
            Subscription.status.in_(NON_TERMINAL_STATUSES),
        )
    ).all()

    displaced = []
    for other in others:
        was_billing = other.status != SubscriptionStatus.pending and other.paypal_subscription_id
        _set_status(other, SubscriptionStatus.expired)
        session.add(other)
        if was_billing:
            displaced.append(other)
    return list(others), displaced


def _cancel_displaced_at_gateway(gateway, displaced_refs: List[str]) -> List[str]:
    failures = []
    for paypal_id in displaced_refs:
        try:
            gateway.cancel_subscription(paypal_id, REPLACED_REASON)
            logger.info(f"Cancelled replaced PayPal subscription {paypal_id}")
        except UpstreamGatewayFailure as exc:
            # still billing at PayPal; local state already says expired
            logger.error(f"Failed to cancel replaced PayPal subscription {paypal_id}: {exc.detail}")
            failures.append(paypal_id)
    return failures


def _make_current(session: Session, subscription: Subscription) -> Tuple[List[int], List[str]]:
    """
    Move ``subscription`` to active and expire every other non-terminal
    subscription of the same user. The caller commits.

    Returns the displaced ids and the PayPal ids of those still billing.
    """
    _set_status(subscription, SubscriptionStatus.active)
    subscription.cancel_at_period_end = False
    session.add(subscription)

    expired, billing = _displace_others(session, subscription)
    return [other.id for other in expired], [other.paypal_subscription_id for other in billing]


def _after_activation_commit(
    gateway, subscription: Subscription, displaced_ids: List[int], billing_refs: List[str]
) -> List[str]:
    logger.info(
        f"Subscription {subscription.id} active for user {subscription.user_id}, "
        f"expired {displaced_ids}"
    )

    # The local commit is the source of truth. Stopping PayPal billing for
    # the replaced subscriptions is advisory: a failure is logged and the
    # subscription stays expired here.
    if gateway is None or not billing_refs:
        return []
    return _cancel_displaced_at_gateway(gateway, billing_refs)


def activate_subscription(
    session: Session,
    subscription_id: int,
    *,
    gateway=None,
    paypal_subscription_id: Optional[str] = None,
    current_period_start: Optional[datetime] = None,
    current_period_end: Optional[datetime] = None,
    paypal_plan_id: Optional[str] = None,
) -> ActivationResult:
    subscription = get_subscription(session, subscription_id)

    try:
        assert_transition(subscription.status, SubscriptionStatus.active)
        _apply_fields(
            session,
            subscription,
            paypal_subscription_id=paypal_subscription_id,
            current_period_start=current_period_start,
            current_period_end=current_period_end,
            paypal_plan_id=paypal_plan_id,
        )
        displaced_ids, billing_refs = _make_current(session, subscription)

        log_activity(
            session,
            subscription.user_id,
            "subscription_activated",
            meta={
                "subscription_id": subscription.id,
                "plan_id": subscription.plan_id,
                "replaced": displaced_ids,
            },
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(subscription)
    failures = _after_activation_commit(gateway, subscription, displaced_ids, billing_refs)

    return ActivationResult(
        subscription=subscription,
        displaced_ids=displaced_ids,
        gateway_cancel_failures=failures,
    )


def mark_cancelled(session: Session, subscription_id: int) -> Subscription:
    subscription = get_subscription(session, subscription_id)
    try:
        _set_status(subscription, SubscriptionStatus.cancelled)
        subscription.cancel_at_period_end = True
        session.add(subscription)
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(subscription)
    return subscription


def mark_expired(session: Session, subscription_id: int) -> Subscription:
    return update_subscription(session, subscription_id, SubscriptionStatus.expired)


def mark_past_due(session: Session, subscription_id: int) -> Subscription:
    return update_subscription(session, subscription_id, SubscriptionStatus.past_due)


def record_recurring_payment(
    session: Session,
    paypal_subscription_id: str,
    *,
    sale_id: Optional[str],
    amount_cents: int,
    currency: str,
    gateway,
    now: Optional[datetime] = None,
) -> Optional[SubscriptionPayment]:
    """
    Record a renewal payment and extend the billing period.

    The gateway subscription is fetched before anything is written, so a
    gateway failure leaves no half-recorded payment behind.
    """
    subscription = find_by_paypal_id(session, paypal_subscription_id)
    if not subscription:
        logger.warning(f"Recurring payment for unknown PayPal subscription {paypal_subscription_id}")
        return None

    if sale_id:
        existing = session.exec(
            select(SubscriptionPayment).where(SubscriptionPayment.paypal_sale_id == sale_id)
        ).first()
        if existing:
            logger.info(f"Sale {sale_id} already recorded")
            return existing

    gateway_sub = gateway.fetch_subscription(paypal_subscription_id) or {}
    next_billing = parse_gateway_time((gateway_sub.get("billing_info") or {}).get("next_billing_time"))

    now = now or datetime.utcnow()
    stale = subscription.status in (SubscriptionStatus.past_due, SubscriptionStatus.expired) or (
        subscription.current_period_end is not None and subscription.current_period_end <= now
    )
    displaced_ids, billing_refs = [], []

    payment = SubscriptionPayment(
        subscription_id=subscription.id,
        amount_cents=amount_cents,
        currency=currency.lower(),
        status="completed",
        paypal_sale_id=sale_id,
    )

    try:
        session.add(payment)
        if next_billing:
            subscription.current_period_end = next_billing
            subscription.updated_at = now
        session.add(subscription)
        if stale:
            # a renewal on a lapsed subscription makes it the current one again
            displaced_ids, billing_refs = _make_current(session, subscription)
            log_activity(
                session,
                subscription.user_id,
                "subscription_reactivated",
                meta={"subscription_id": subscription.id, "sale_id": sale_id, "replaced": displaced_ids},
            )
        session.commit()
    except IntegrityError:
        session.rollback()
        logger.info(f"Sale {sale_id} recorded concurrently")
        return session.exec(
            select(SubscriptionPayment).where(SubscriptionPayment.paypal_sale_id == sale_id)
        ).first()
    except Exception:
        session.rollback()
        raise

    session.refresh(payment)
    logger.info(f"Recorded sale {sale_id} for subscription {subscription.id}")
    if stale:
        session.refresh(subscription)
        _after_activation_commit(gateway, subscription, displaced_ids, billing_refs)
    return payment


def cancel_subscription(
    session: Session,
    subscription_id: int,
    gateway,
    *,
    user_id: Optional[int] = None,
) -> Subscription:
    """User-initiated cancel. Access is kept until ``current_period_end``."""
    subscription = get_subscription(session, subscription_id)
    if user_id is not None and subscription.user_id != user_id:
        raise Forbidden("Not your subscription")

    assert_transition(subscription.status, SubscriptionStatus.cancelled)

    if subscription.paypal_subscription_id:
        try:
            gateway.cancel_subscription(subscription.paypal_subscription_id)
        except UpstreamGatewayFailure as exc:
            logger.error(
                f"Failed to cancel PayPal subscription {subscription.paypal_subscription_id}: {exc.detail}"
            )

    return mark_cancelled(session, subscription_id)


# -------------------------
# queries
# -------------------------

def get_user_subscription(
    session: Session,
    user_id: int,
    *,
    gateway=None,
    now: Optional[datetime] = None,
) -> Optional[Subscription]:
    """
    Newest subscription that still matters for the user: one that keeps
    access with a future period end, or a pending one younger than 24h.
    With a gateway, a pending result is refreshed first.
    """
    now = now or datetime.utcnow()
    subscription = session.exec(
        select(Subscription)
        .where(
            Subscription.user_id == user_id,
            or_(
                and_(
                    Subscription.status.in_(ENTITLED_STATUSES),
                    Subscription.current_period_end > now,
                ),
                and_(
                    Subscription.status == SubscriptionStatus.pending,
                    Subscription.created_at > now - PENDING_GRACE,
                ),
            ),
        )
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
    ).first()

    if subscription and subscription.status == SubscriptionStatus.pending and gateway is not None:
        return refresh_subscription_status(session, subscription.id, gateway)
    return subscription


def has_subscription_tier(session: Session, user_id: int, tier: SubscriptionTier) -> bool:
    subscription = get_user_subscription(session, user_id)
    if not subscription or subscription.status not in ENTITLED_STATUSES:
        return False

    plan = session.get(SubscriptionPlan, subscription.plan_id)
    if not plan:
        return False
    return SUBSCRIPTION_TIERS.index(plan.tier) >= SUBSCRIPTION_TIERS.index(SubscriptionTier(tier))


def refresh_subscription_status(session: Session, subscription_id: int, gateway) -> Subscription:
    subscription = get_subscription(session, subscription_id)
    if subscription.status != SubscriptionStatus.pending or not subscription.paypal_subscription_id:
        return subscription

    try:
        gateway_sub = gateway.fetch_subscription(subscription.paypal_subscription_id) or {}
    except UpstreamGatewayFailure as exc:
        logger.error(f"Failed to refresh subscription {subscription_id}: {exc.detail}")
        return subscription

    if gateway_sub.get("status") != "ACTIVE":
        return subscription

    start, end = period_from_resource(gateway_sub)
    return activate_subscription(
        session,
        subscription_id,
        gateway=gateway,
        current_period_start=start,
        current_period_end=end,
        paypal_plan_id=gateway_sub.get("plan_id"),
    ).subscription


# -------------------------
# admin / jobs
# -------------------------

def grant_subscription_manually(
    session: Session,
    *,
    user_id: int,
    plan_id: int,
    interval: SubscriptionInterval = SubscriptionInterval.monthly,
    duration_days: int = 30,
    gateway=None,
) -> Subscription:
    if not session.get(SubscriptionPlan, plan_id):
        raise NotFound(f"Plan {plan_id} not found")

    now = datetime.utcnow()
    subscription = Subscription(
        user_id=user_id,
        plan_id=plan_id,
        interval=interval,
        status=SubscriptionStatus.pending,
    )
    session.add(subscription)
    session.commit()
    session.refresh(subscription)

    return activate_subscription(
        session,
        subscription.id,
        gateway=gateway,
        current_period_start=now,
        current_period_end=now + timedelta(days=duration_days),
    ).subscription


def cleanup_abandoned_pending_subscriptions(session: Session, now: Optional[datetime] = None) -> int:
    cutoff = (now or datetime.utcnow()) - PENDING_GRACE

    abandoned = session.exec(
        select(Subscription).where(
            Subscription.status == SubscriptionStatus.pending,
            Subscription.created_at < cutoff,
        )
    ).all()
    if not abandoned:
        return 0

    for subscription in abandoned:
        _set_status(subscription, SubscriptionStatus.expired)
        session.add(subscription)
    session.commit()

    logger.info(f"Marked {len(abandoned)} abandoned pending subscriptions as expired")
    return len(abandoned)
