"""
Pytest configuration and shared fixtures for the commerce tests.
"""
import os

# settings are read at import time; point them at throwaway values first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("BREVO_API_KEY", "")
os.environ.setdefault("PAYPAL_WEBHOOK_ID", "WH-TEST")

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

import app.models  # noqa: F401
from app.database import get_session
from app.dependencies.services import get_lock_store
from app.errors import UpstreamGatewayFailure
from app.models.coupon import Coupon, DiscountType
from app.models.course import Course
from app.models.learning_path import LearningPath, LearningPathCourse
from app.models.lesson import Lesson, Progress
from app.models.purchase import Purchase
from app.models.subscription import (
    Subscription,
    SubscriptionInterval,
    SubscriptionPlan,
    SubscriptionStatus,
    SubscriptionTier,
)
from app.models.user import User
from app.notifications.service import get_notifier
from app.services.paypal_client import get_payment_gateway
from app.utils.token import create_access_token
from app.utils.ttl_store import TTLStore


# -------------------------
# fakes
# -------------------------

class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGateway:
    """In-memory stand-in for the PayPal client."""

    def __init__(self):
        self.verify_result = True
        self.verify_calls = []
        self.orders = []
        self.captured = []
        self.capture_response = {
            "id": "ORDER-1",
            "status": "COMPLETED",
            "purchase_units": [{"payments": {"captures": [{"id": "CAPTURE-1"}]}}],
        }
        self.capture_error = None
        self.subscriptions = {}
        self.fetch_error = None
        self.cancelled = []
        self.cancel_error = None

    def create_order(self, **kwargs):
        self.orders.append(kwargs)
        return {
            "order_id": f"ORDER-{len(self.orders)}",
            "approval_url": f"https://paypal.test/approve/{len(self.orders)}",
        }

    def capture_order(self, order_id):
        self.captured.append(order_id)
        if self.capture_error:
            raise self.capture_error
        return self.capture_response

    def fetch_subscription(self, subscription_id):
        if self.fetch_error:
            raise self.fetch_error
        return self.subscriptions.get(subscription_id, {})

    def cancel_subscription(self, subscription_id, reason="User requested cancellation"):
        self.cancelled.append((subscription_id, reason))
        if self.cancel_error:
            raise self.cancel_error
        return True

    def verify_webhook_signature(self, **kwargs):
        self.verify_calls.append(kwargs)
        return self.verify_result


class RecordingNotifier:
    """Records notifier calls; ``fail=True`` makes every call raise."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def _record(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        if self.fail:
            raise RuntimeError(f"{name} exploded")

    def names(self):
        return [name for name, _, _ in self.calls]

    def purchase_confirmed(self, session, user, results):
        self._record("purchase_confirmed", user, list(results))

    def enrollment_granted(self, session, user, results):
        self._record("enrollment_granted", user, list(results))

    def purchase_failed(self, session, user, **kwargs):
        self._record("purchase_failed", user, **kwargs)

    def fulfillment_failed(self, session, **kwargs):
        self._record("fulfillment_failed", **kwargs)

    def subscription_activated(self, session, user, subscription, plan):
        self._record("subscription_activated", user, subscription.id, plan.id if plan else None)

    def certificate_issued(self, session, user, certificate, title):
        self._record("certificate_issued", user, certificate.certificate_id, title)


# -------------------------
# database
# -------------------------

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def lock_store(clock):
    return TTLStore(default_ttl=300, clock=clock)


# -------------------------
# factories
# -------------------------

@pytest.fixture
def make_user(session):
    counter = {"n": 0}

    def _make(role="customer", **kwargs):
        counter["n"] += 1
        user = User(
            name=kwargs.pop("name", f"Learner {counter['n']}"),
            email=kwargs.pop("email", f"learner{counter['n']}@example.com"),
            role=role,
            **kwargs,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_course(session):
    counter = {"n": 0}

    def _make(lessons=0, **kwargs):
        counter["n"] += 1
        course = Course(
            title=kwargs.pop("title", f"Course {counter['n']}"),
            slug=kwargs.pop("slug", f"course-{counter['n']}"),
            price_cents=kwargs.pop("price_cents", 5000),
            **kwargs,
        )
        session.add(course)
        session.commit()
        session.refresh(course)

        for i in range(lessons):
            session.add(Lesson(course_id=course.id, title=f"Lesson {i + 1}", sort_order=i))
        session.commit()
        return course

    return _make


@pytest.fixture
def make_purchase(session):
    def _make(user, course, status="pending", provider_ref="ORDER-1", **kwargs):
        purchase = Purchase(
            user_id=user.id,
            course_id=course.id,
            amount_cents=kwargs.pop("amount_cents", course.price_cents),
            status=status,
            provider_ref=provider_ref,
            **kwargs,
        )
        session.add(purchase)
        session.commit()
        session.refresh(purchase)
        return purchase

    return _make


@pytest.fixture
def make_coupon(session):
    def _make(code="SAVE10", **kwargs):
        coupon = Coupon(
            code=code,
            discount_type=kwargs.pop("discount_type", DiscountType.FIXED),
            discount_amount=kwargs.pop("discount_amount", 1000),
            start_date=kwargs.pop("start_date", datetime.utcnow() - timedelta(days=1)),
            **kwargs,
        )
        session.add(coupon)
        session.commit()
        session.refresh(coupon)
        return coupon

    return _make


@pytest.fixture
def make_plan(session):
    def _make(tier=SubscriptionTier.professional, **kwargs):
        plan = SubscriptionPlan(
            name=kwargs.pop("name", tier.value.title()),
            tier=tier,
            price_monthly_cents=kwargs.pop("price_monthly_cents", 2900),
            price_annual_cents=kwargs.pop("price_annual_cents", 29000),
            paypal_monthly_plan_id=kwargs.pop("paypal_monthly_plan_id", f"P-{tier.value.upper()}-M"),
            paypal_annual_plan_id=kwargs.pop("paypal_annual_plan_id", f"P-{tier.value.upper()}-Y"),
            **kwargs,
        )
        session.add(plan)
        session.commit()
        session.refresh(plan)
        return plan

    return _make


@pytest.fixture
def make_subscription(session):
    def _make(user, plan, status=SubscriptionStatus.pending, **kwargs):
        now = datetime.utcnow()
        if status != SubscriptionStatus.pending:
            kwargs.setdefault("current_period_start", now - timedelta(days=1))
            kwargs.setdefault("current_period_end", now + timedelta(days=30))
        subscription = Subscription(
            user_id=user.id,
            plan_id=plan.id,
            status=status,
            interval=kwargs.pop("interval", SubscriptionInterval.monthly),
            **kwargs,
        )
        session.add(subscription)
        session.commit()
        session.refresh(subscription)
        return subscription

    return _make


@pytest.fixture
def complete_course(session):
    def _complete(user, course):
        lessons = session.exec(select(Lesson).where(Lesson.course_id == course.id)).all()
        for lesson in lessons:
            session.add(Progress(user_id=user.id, lesson_id=lesson.id, completed_at=datetime.utcnow()))
        session.commit()

    return _complete


@pytest.fixture
def make_path(session):
    def _make(courses, title="Full Stack Path", slug="full-stack"):
        path = LearningPath(title=title, slug=slug)
        session.add(path)
        session.commit()
        session.refresh(path)
        for i, course in enumerate(courses):
            session.add(LearningPathCourse(path_id=path.id, course_id=course.id, sort_order=i))
        session.commit()
        return path

    return _make


# -------------------------
# HTTP
# -------------------------

@pytest.fixture
def client(engine, gateway, notifier, lock_store):
    from app.main import app

    def _session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_lock_store] = lambda: lock_store

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user)}"}

    return _headers


@pytest.fixture
def paypal_headers():
    return {
        "paypal-transmission-id": "TX-1",
        "paypal-transmission-time": "2026-01-01T00:00:00Z",
        "paypal-transmission-sig": "sig",
        "paypal-cert-url": "https://api.paypal.com/cert.pem",
        "paypal-auth-algo": "SHA256withRSA",
    }


@pytest.fixture
def gateway_down():
    return UpstreamGatewayFailure("PayPal unavailable")
