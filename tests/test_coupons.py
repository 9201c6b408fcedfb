import threading
from datetime import timedelta
from decimal import Decimal

import pytest

from delivery_service.exceptions import CouponUsageLimitReached, DuplicateCoupon, Forbidden
from delivery_service.models import Coupon
from delivery_service.schemas.coupon import CouponCreate
from delivery_service.services.coupon_service import CouponRejection, CouponService, compute_discount
from delivery_service.timeutils import utcnow

from conftest import MERCHANT_ID, merchant_principal


def test_percentage_below_minimum_then_discounted(db, make_coupon):
    make_coupon(min_order_value=Decimal("50"))
    service = CouponService(db)

    rejected = service.validate_and_price("SAVE10", MERCHANT_ID, Decimal("40"))
    assert not rejected.valid
    assert rejected.reason == CouponRejection.BELOW_MINIMUM_ORDER

    accepted = service.validate_and_price("save10", MERCHANT_ID, Decimal("100"))
    assert accepted.valid
    assert accepted.discount_amount == Decimal("10.00")


def test_fixed_discount_is_capped_at_subtotal():
    assert compute_discount("fixed", Decimal("25"), Decimal("18.40")) == Decimal("18.40")
    assert compute_discount("fixed", Decimal("5"), Decimal("18.40")) == Decimal("5.00")


def test_rejection_order(db, make_coupon):
    now = utcnow()
    make_coupon(code="OFF", is_active=False)
    make_coupon(code="OLD", expires_at=now - timedelta(days=1))
    make_coupon(code="SOON", starts_at=now + timedelta(days=1))
    make_coupon(code="USED", max_uses=1, current_uses=1)
    service = CouponService(db)

    def reason(code):
        return service.validate_and_price(code, MERCHANT_ID, Decimal("100")).reason

    assert reason("NOPE") == CouponRejection.NOT_FOUND
    assert reason("OFF") == CouponRejection.INACTIVE
    assert reason("OLD") == CouponRejection.EXPIRED
    assert reason("SOON") == CouponRejection.NOT_YET_STARTED
    assert reason("USED") == CouponRejection.USAGE_LIMIT_REACHED


def test_code_belongs_to_its_merchant(db, make_coupon):
    make_coupon(merchant_id="merchant-2")
    result = CouponService(db).validate_and_price("SAVE10", MERCHANT_ID, Decimal("100"))
    assert result.reason == CouponRejection.NOT_FOUND


def test_validation_does_not_consume_a_use(db, make_coupon):
    coupon = make_coupon(max_uses=1)
    CouponService(db).validate_and_price("SAVE10", MERCHANT_ID, Decimal("100"))
    db.refresh(coupon)
    assert coupon.current_uses == 0


def test_concurrent_redeem_respects_cap(session_factory, make_coupon):
    coupon_id = make_coupon(max_uses=1).id
    attempts = 8
    barrier = threading.Barrier(attempts)
    outcomes = []
    lock = threading.Lock()

    def redeem():
        with session_factory() as session:
            service = CouponService(session)
            barrier.wait()
            try:
                with session.begin():
                    service.redeem(coupon_id)
                result = "ok"
            except CouponUsageLimitReached:
                result = "limit"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=redeem) for _ in range(attempts)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("ok") == 1
    assert outcomes.count("limit") == attempts - 1
    with session_factory() as session:
        assert session.get(Coupon, coupon_id).current_uses == 1


def test_create_coupon_normalizes_and_rejects_duplicates(db):
    service = CouponService(db)
    data = CouponCreate(merchant_id=MERCHANT_ID, code=" welcome ", discount_type="fixed", discount_value=Decimal("5"))
    coupon = service.create_coupon(data, merchant_principal())
    assert coupon.code == "WELCOME"

    with pytest.raises(DuplicateCoupon):
        service.create_coupon(data, merchant_principal())


def test_create_coupon_for_another_merchant_is_forbidden(db):
    data = CouponCreate(merchant_id="merchant-2", code="X", discount_type="fixed", discount_value=Decimal("5"))
    with pytest.raises(Forbidden):
        CouponService(db).create_coupon(data, merchant_principal())
