from decimal import Decimal

import pytest

from delivery_service.exceptions import (
    CouponUsageLimitReached, Forbidden, InvalidOrder, InvalidTransition, PreconditionMismatch,
)
from delivery_service.models import Coupon, Courier, OrderStatus, PaymentMethod
from delivery_service.security import SYSTEM_PRINCIPAL
from delivery_service.services.dispatch_service import DispatchCoordinator
from delivery_service.services.order_state_machine import OrderStateMachine, check_advance, successor

from conftest import merchant_principal


def advance_to(state_machine, order_id, *statuses):
    for status in statuses:
        order = state_machine.advance(order_id, status, merchant_principal())
    return order


def test_successor_follows_the_chain():
    assert successor(OrderStatus.PENDING) == OrderStatus.CONFIRMED
    assert successor(OrderStatus.READY) == OrderStatus.AWAITING_DRIVER
    assert successor(OrderStatus.DELIVERED) is None
    assert successor(OrderStatus.CANCELLED) is None


@pytest.mark.parametrize("current,target", [
    (OrderStatus.PENDING, OrderStatus.PREPARING),
    (OrderStatus.PREPARING, OrderStatus.CONFIRMED),
    (OrderStatus.READY, OrderStatus.AWAITING_DRIVER),
    (OrderStatus.READY, OrderStatus.OUT_FOR_DELIVERY),
    (OrderStatus.DELIVERED, OrderStatus.CANCELLED),
    (OrderStatus.CANCELLED, OrderStatus.PENDING),
])
def test_illegal_moves(current, target):
    with pytest.raises(InvalidTransition):
        check_advance(current, target)


def test_checkout_totals(checkout, make_product, make_coupon):
    make_coupon(code="FIVE", discount_type="fixed", discount_value="5")
    order = checkout(product=make_product(price="22.50"), quantity=2, delivery_fee="7.90", coupon_code="five")
    assert order.status == OrderStatus.PENDING.value
    assert order.subtotal == Decimal("45.00")
    assert order.discount_amount == Decimal("5.00")
    assert order.total == Decimal("47.90")
    assert order.total == order.subtotal - order.discount_amount + order.delivery_fee
    assert order.coupon_code == "FIVE"
    assert order.version == 1


def test_checkout_publishes_order_created_to_merchant(checkout, push):
    order = checkout()
    [event] = push.events
    assert event.event_type.value == "order_created"
    assert event.order_id == order.id
    assert event.sequence == 1
    assert [audience.value for audience in event.audiences] == ["merchant"]


def test_change_for_must_cover_total(checkout):
    with pytest.raises(InvalidOrder):
        checkout(needs_change=True, change_for=Decimal("10.00"))
    with pytest.raises(InvalidOrder):
        checkout(payment_method=PaymentMethod.ONLINE, needs_change=True, change_for=Decimal("100.00"))
    order = checkout(needs_change=True, change_for=Decimal("50.00"))
    assert order.change_for == Decimal("50.00")


def test_merchant_walks_order_to_ready(db, fanout, push, checkout):
    order = checkout()
    state_machine = OrderStateMachine(db, fanout)
    order = advance_to(state_machine, order.id, OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY)

    assert order.status == OrderStatus.READY.value
    assert order.version == 4
    assert push.types_for(order.id) == ["order_created"] + ["status_changed"] * 3
    assert [event.sequence for event in push.events] == [1, 2, 3, 4]


def test_skip_is_rejected_and_leaves_state(db, fanout, push, checkout):
    order = checkout()
    state_machine = OrderStateMachine(db, fanout)
    with pytest.raises(InvalidTransition):
        state_machine.advance(order.id, OrderStatus.READY, merchant_principal())
    with pytest.raises(InvalidTransition):
        state_machine.advance(order.id, OrderStatus.AWAITING_DRIVER, merchant_principal())

    reloaded = state_machine.orders.get_by_id(order.id)
    assert reloaded.status == OrderStatus.PENDING.value
    assert reloaded.version == 1
    assert len(push.events) == 1


def test_other_merchant_cannot_advance(db, fanout, checkout):
    order = checkout()
    with pytest.raises(Forbidden):
        OrderStateMachine(db, fanout).advance(order.id, OrderStatus.CONFIRMED, merchant_principal("merchant-2"))


def test_stale_expected_status(db, fanout, checkout):
    order = checkout()
    state_machine = OrderStateMachine(db, fanout)
    state_machine.advance(order.id, OrderStatus.CONFIRMED, merchant_principal())
    with pytest.raises(PreconditionMismatch):
        state_machine.advance(
            order.id, OrderStatus.CANCELLED, merchant_principal(), expected_status=OrderStatus.PENDING
        )


def test_cancel_from_any_non_terminal_status(db, fanout, checkout):
    state_machine = OrderStateMachine(db, fanout)
    order = checkout()
    advance_to(state_machine, order.id, OrderStatus.CONFIRMED, OrderStatus.PREPARING)
    cancelled = state_machine.advance(order.id, OrderStatus.CANCELLED, merchant_principal())
    assert cancelled.status == OrderStatus.CANCELLED.value
    with pytest.raises(InvalidTransition):
        state_machine.advance(order.id, OrderStatus.CANCELLED, merchant_principal())


def test_confirmation_redeems_coupon(db, fanout, checkout, make_coupon):
    coupon = make_coupon(max_uses=1)
    first = checkout(coupon_code="SAVE10")
    second = checkout(coupon_code="SAVE10")
    state_machine = OrderStateMachine(db, fanout)

    state_machine.advance(first.id, OrderStatus.CONFIRMED, SYSTEM_PRINCIPAL)
    with pytest.raises(CouponUsageLimitReached):
        state_machine.advance(second.id, OrderStatus.CONFIRMED, SYSTEM_PRINCIPAL)

    assert db.get(Coupon, coupon.id).current_uses == 1
    assert state_machine.orders.get_by_id(second.id).status == OrderStatus.PENDING.value


def test_cancelling_dispatched_order_releases_courier(db, fanout, checkout, make_courier):
    courier = make_courier()
    order = checkout()
    state_machine = OrderStateMachine(db, fanout)
    advance_to(state_machine, order.id, OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY)
    DispatchCoordinator(db, fanout).offer(order.id, courier.id, merchant_principal())

    state_machine.advance(order.id, OrderStatus.CANCELLED, merchant_principal())

    released = db.get(Courier, courier.id)
    db.refresh(released)
    assert released.dispatch_status == "idle"
    assert released.is_available is True
