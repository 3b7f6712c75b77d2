import pytest
from sqlmodel import select

from app.errors import ErrorKind, NotFound, OutOfStock
from app.models.activity_log import ActivityLog
from app.models.coupon import Coupon
from app.models.course import Course
from app.models.enrollment import Enrollment
from app.models.payment import Payment
from app.models.purchase import Purchase
from app.services.fulfillment_service import fulfill_order, fulfill_purchase


def _count(session, model, *where):
    return len(session.exec(select(model).where(*where)).all())


def test_fulfillment_grants_everything_once(session, make_user, make_course, make_purchase):
    user = make_user()
    course = make_course(inventory=5)
    purchase = make_purchase(user, course)

    first = fulfill_purchase(session, purchase.id, payment_ref="CAPTURE-1")
    second = fulfill_purchase(session, purchase.id, payment_ref="CAPTURE-1")

    assert first.applied is True
    assert second.applied is False

    session.expire_all()
    assert session.get(Purchase, purchase.id).status == "paid"
    assert session.get(Course, course.id).inventory == 4
    assert _count(session, Enrollment, Enrollment.user_id == user.id) == 1
    payments = session.exec(select(Payment)).all()
    assert [p.provider_ref for p in payments] == ["CAPTURE-1"]
    assert _count(session, ActivityLog, ActivityLog.type == "purchase_completed") == 1


def test_unlimited_inventory_is_left_alone(session, make_user, make_course, make_purchase):
    course = make_course(inventory=None)
    purchase = make_purchase(make_user(), course)

    assert fulfill_purchase(session, purchase.id).applied

    session.expire_all()
    assert session.get(Course, course.id).inventory is None


def test_last_seat_is_sold_once(session, make_user, make_course, make_purchase):
    course = make_course(inventory=1)
    first = make_purchase(make_user(), course, provider_ref="ORDER-A")
    second = make_purchase(make_user(), course, provider_ref="ORDER-B")

    assert fulfill_purchase(session, first.id).applied

    with pytest.raises(OutOfStock) as exc:
        fulfill_purchase(session, second.id)
    assert exc.value.kind == ErrorKind.OUT_OF_STOCK
    assert exc.value.purchase_id == second.id

    session.expire_all()
    assert session.get(Course, course.id).inventory == 0
    assert session.get(Purchase, second.id).status == "pending"
    assert _count(session, Enrollment, Enrollment.user_id == second.user_id) == 0
    assert _count(session, Payment, Payment.purchase_id == second.id) == 0


def test_out_of_stock_rolls_back_the_status_change(session, make_user, make_course, make_purchase):
    course = make_course(inventory=0)
    purchase = make_purchase(make_user(), course)

    with pytest.raises(OutOfStock):
        fulfill_purchase(session, purchase.id)

    session.expire_all()
    assert session.get(Purchase, purchase.id).status == "pending"
    # the purchase can still be fulfilled once a seat frees up
    session.get(Course, course.id).inventory = 1
    session.commit()
    assert fulfill_purchase(session, purchase.id).applied


def test_coupon_use_never_exceeds_cap(session, make_user, make_course, make_purchase, make_coupon):
    coupon = make_coupon(code="ONCE", max_uses=1)
    course = make_course()
    first = make_purchase(make_user(), course, coupon_id=coupon.id, provider_ref="A")
    second = make_purchase(make_user(), course, coupon_id=coupon.id, provider_ref="B")

    assert fulfill_purchase(session, first.id).applied
    # the cap is hit but the payment is already taken: fulfillment still applies
    assert fulfill_purchase(session, second.id).applied

    session.expire_all()
    assert session.get(Coupon, coupon.id).used_count == 1


def test_existing_enrollment_is_repointed(session, make_user, make_course, make_purchase):
    user = make_user()
    course = make_course()
    session.add(Enrollment(user_id=user.id, course_id=course.id))
    session.commit()
    purchase = make_purchase(user, course)

    fulfill_purchase(session, purchase.id)

    enrollments = session.exec(select(Enrollment).where(Enrollment.user_id == user.id)).all()
    assert len(enrollments) == 1
    assert enrollments[0].purchase_id == purchase.id


def test_unknown_purchase(session):
    with pytest.raises(NotFound):
        fulfill_purchase(session, 999)


def test_fulfill_order_covers_every_purchase_of_the_order(session, make_user, make_course, make_purchase):
    user = make_user()
    a, b = make_course(), make_course()
    make_purchase(user, a, provider_ref="ORDER-9")
    make_purchase(user, b, provider_ref="ORDER-9")
    make_purchase(make_user(), a, provider_ref="ORDER-OTHER")

    results = fulfill_order(session, "ORDER-9", payment_ref="CAPTURE-9")
    assert [r.applied for r in results] == [True, True]
    assert {r.course_id for r in results} == {a.id, b.id}

    again = fulfill_order(session, "ORDER-9")
    assert [r.applied for r in again] == [False, False]
