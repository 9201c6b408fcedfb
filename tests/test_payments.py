import pytest
from sqlalchemy.exc import OperationalError

from delivery_service.api.deps import call_with_retry
from delivery_service.exceptions import NotFound
from delivery_service.models import OrderStatus, PaymentMethod
from delivery_service.repositories.order_repository import OrderRepository
from delivery_service.schemas.payment import PaymentWebhook
from delivery_service.services.order_state_machine import OrderStateMachine
from delivery_service.services.payment_service import PaymentService


def webhook(order_id, status="succeeded", event_id="evt-1"):
    return PaymentWebhook(event_id=event_id, order_id=order_id, status=status)


def test_prepaid_success_confirms_order(db, fanout, push, checkout):
    order = checkout(payment_method=PaymentMethod.ONLINE)
    assert PaymentService(db, fanout).process_webhook(webhook(order.id))

    reloaded = OrderRepository(db).get_by_id(order.id)
    assert reloaded.payment_status == "paid"
    assert reloaded.status == OrderStatus.CONFIRMED.value
    assert push.types_for(order.id) == ["order_created", "status_changed"]


def test_duplicate_delivery_is_ignored(db, fanout, push, checkout):
    order = checkout(payment_method=PaymentMethod.INSTANT_TRANSFER)
    service = PaymentService(db, fanout)
    assert service.process_webhook(webhook(order.id))
    assert service.process_webhook(webhook(order.id)) is False
    assert push.types_for(order.id) == ["order_created", "status_changed"]


def test_cash_order_is_not_auto_confirmed(db, fanout, checkout):
    order = checkout(payment_method=PaymentMethod.CASH)
    PaymentService(db, fanout).process_webhook(webhook(order.id))
    reloaded = OrderRepository(db).get_by_id(order.id)
    assert reloaded.payment_status == "paid"
    assert reloaded.status == OrderStatus.PENDING.value


def test_failed_payment_leaves_order_pending(db, fanout, checkout):
    order = checkout(payment_method=PaymentMethod.ONLINE)
    PaymentService(db, fanout).process_webhook(webhook(order.id, status="failed"))
    reloaded = OrderRepository(db).get_by_id(order.id)
    assert reloaded.payment_status == "failed"
    assert reloaded.status == OrderStatus.PENDING.value


def test_unknown_order_can_be_redelivered(db, fanout):
    service = PaymentService(db, fanout)
    with pytest.raises(NotFound):
        service.process_webhook(webhook("missing"))
    with pytest.raises(NotFound):
        service.process_webhook(webhook("missing"))


def fail_first_advance(monkeypatch):
    """Make the first OrderStateMachine.advance call hit a locked database"""
    real_advance = OrderStateMachine.advance
    calls = []

    def flaky_advance(self, *args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            raise OperationalError("UPDATE orders", {}, Exception("database is locked"))
        return real_advance(self, *args, **kwargs)

    monkeypatch.setattr(OrderStateMachine, "advance", flaky_advance)
    return calls


def test_retried_webhook_still_confirms_after_transient_error(db, fanout, push, checkout, monkeypatch):
    order = checkout(payment_method=PaymentMethod.ONLINE)
    calls = fail_first_advance(monkeypatch)

    call_with_retry(PaymentService(db, fanout).process_webhook, webhook(order.id))

    reloaded = OrderRepository(db).get_by_id(order.id)
    assert reloaded.payment_status == "paid"
    assert reloaded.status == OrderStatus.CONFIRMED.value
    assert len(calls) == 2
    assert push.types_for(order.id) == ["order_created", "status_changed"]


def test_redelivery_confirms_order_left_pending(db, fanout, checkout, monkeypatch):
    order = checkout(payment_method=PaymentMethod.ONLINE)
    fail_first_advance(monkeypatch)
    service = PaymentService(db, fanout)

    with pytest.raises(OperationalError):
        service.process_webhook(webhook(order.id))
    assert OrderRepository(db).get_by_id(order.id).status == OrderStatus.PENDING.value

    assert service.process_webhook(webhook(order.id)) is False
    assert OrderRepository(db).get_by_id(order.id).status == OrderStatus.CONFIRMED.value
