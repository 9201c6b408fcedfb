import json
import threading

from delivery_service.api.deps import event_stream
from delivery_service.models import OrderStatus
from delivery_service.schemas.events import Audience, EventType, NotificationEvent
from delivery_service.services.notification_fanout import (
    AuditLogBackfill, BackgroundPushDispatcher, NotificationFanout, NotificationHub, courier_channel, merchant_channel,
    order_channel,
)
from delivery_service.services.order_state_machine import OrderStateMachine
from delivery_service.services.push_messages import build_push_messages

from conftest import MERCHANT_ID, merchant_principal


def make_event(sequence, order_id="o-1", audiences=(Audience.MERCHANT,), status="confirmed", **fields):
    return NotificationEvent(
        event_type=EventType.STATUS_CHANGED,
        order_id=order_id,
        merchant_id="m-1",
        sequence=sequence,
        audiences=list(audiences),
        payload={"status": status},
        **fields,
    )


def drain(subscription):
    events = []
    while True:
        event = subscription.get(timeout=0.01)
        if event is None:
            return events
        events.append(event)


def test_out_of_order_events_are_held_back():
    hub = NotificationHub()
    subscription = hub.subscribe(merchant_channel("m-1"))

    hub.deliver(make_event(1))
    hub.deliver(make_event(3))
    assert [e.sequence for e in drain(subscription)] == [1]

    hub.deliver(make_event(2))
    assert [e.sequence for e in drain(subscription)] == [2, 3]


def test_duplicate_sequence_is_dropped():
    hub = NotificationHub()
    subscription = hub.subscribe(merchant_channel("m-1"))
    hub.deliver(make_event(1))
    hub.deliver(make_event(1))
    assert len(drain(subscription)) == 1


def test_events_routed_by_audience():
    hub = NotificationHub()
    merchant = hub.subscribe(merchant_channel("m-1"))
    courier = hub.subscribe(courier_channel("c-1"))
    customer = hub.subscribe(order_channel("o-1"))

    hub.deliver(make_event(1, audiences=[Audience.COURIER], courier_id="c-1"))
    hub.deliver(make_event(2, audiences=[Audience.MERCHANT, Audience.CUSTOMER], courier_id="c-1"))

    assert [e.sequence for e in drain(merchant)] == [2]
    assert [e.sequence for e in drain(courier)] == [1]
    assert [e.sequence for e in drain(customer)] == [2]


def test_slow_subscriber_is_detached():
    hub = NotificationHub(subscriber_queue_size=1)
    subscription = hub.subscribe(merchant_channel("m-1"))
    hub.deliver(make_event(1))
    hub.deliver(make_event(2))
    assert subscription.closed
    assert hub.subscriber_count(merchant_channel("m-1")) == 0


def test_push_failure_does_not_propagate():
    class Broken:
        def dispatch(self, event):
            raise RuntimeError("push down")

    hub = NotificationHub()
    subscription = hub.subscribe(merchant_channel("m-1"))
    NotificationFanout(hub, Broken()).publish(make_event(1))
    assert len(drain(subscription)) == 1


def test_background_dispatcher_sends_in_order():
    sent = []
    done = threading.Event()

    class Sender:
        def send(self, message):
            sent.append(message.data["status"])
            if len(sent) == 2:
                done.set()
            return True

    dispatcher = BackgroundPushDispatcher(Sender())
    dispatcher.dispatch(make_event(1, status="confirmed"))
    dispatcher.dispatch(make_event(2, status="preparing"))
    assert done.wait(timeout=5)
    dispatcher.shutdown()
    assert sent == ["confirmed", "preparing"]


def test_push_messages_per_audience():
    event = make_event(
        2,
        audiences=[Audience.MERCHANT, Audience.CUSTOMER, Audience.COURIER],
        status="out_for_delivery",
        courier_id="c-1",
        courier_principal_id="user-c-1",
        customer_principal_id="customer-9",
    )
    targets = {message.target: message for message in build_push_messages(event)}
    assert set(targets) == {"merchant:m-1", "customer-9", "user-c-1"}
    assert targets["customer-9"].title == "Your order: Out for delivery"


def test_guest_customer_gets_no_push():
    event = make_event(1, audiences=[Audience.CUSTOMER])
    assert build_push_messages(event) == []


class LogStub:
    """Backfill source over a fixed set of logged events"""

    def __init__(self, *events):
        self.logged = {event.sequence: event for event in events}
        self.calls = []

    def __call__(self, order_id, first, last):
        self.calls.append((first, last))
        return [self.logged[seq] for seq in range(first, last + 1) if seq in self.logged]


def test_gap_from_another_worker_is_filled_from_the_log():
    hub = NotificationHub(backfill=LogStub(make_event(2)))
    subscription = hub.subscribe(merchant_channel("m-1"))

    hub.deliver(make_event(1))
    hub.deliver(make_event(3))
    hub.deliver(make_event(4))
    assert [e.sequence for e in drain(subscription)] == [1, 2, 3, 4]


def test_fresh_hub_does_not_lose_an_earlier_late_event():
    log = LogStub(make_event(1), make_event(2))
    hub = NotificationHub(backfill=log)
    subscription = hub.subscribe(merchant_channel("m-1"))

    hub.deliver(make_event(3))
    hub.deliver(make_event(2))
    assert [e.sequence for e in drain(subscription)] == [1, 2, 3]
    assert log.calls == [(1, 2)]


def test_late_copy_after_terminal_event_is_not_replayed():
    log = LogStub(make_event(1), make_event(2, status="preparing"))
    hub = NotificationHub(backfill=log)
    subscription = hub.subscribe(merchant_channel("m-1"))

    hub.deliver(make_event(3, status="delivered"))
    hub.deliver(make_event(2, status="preparing"))
    assert [e.sequence for e in drain(subscription)] == [1, 2, 3]
    assert log.calls == [(1, 2)]


def test_audit_log_backfill_rebuilds_committed_events(db, session_factory, fanout, push, checkout):
    order = checkout()
    OrderStateMachine(db, fanout).advance(order.id, OrderStatus.CONFIRMED, merchant_principal())
    confirmed = push.events[-1]

    other_worker = NotificationHub(backfill=AuditLogBackfill(session_factory))
    subscription = other_worker.subscribe(merchant_channel(MERCHANT_ID))
    other_worker.deliver(confirmed)

    received = drain(subscription)
    assert [e.event_type.value for e in received] == ["order_created", "status_changed"]
    assert [e.event_id for e in received] == [event.event_id for event in push.events]
    assert received[0].payload["status"] == "pending"


def test_stream_flushes_then_reports_overflow():
    hub = NotificationHub(subscriber_queue_size=1)
    subscription = hub.subscribe(merchant_channel("m-1"))
    hub.deliver(make_event(1))
    hub.deliver(make_event(2))

    frames = list(event_stream(subscription, keepalive=0.01))
    assert len(frames) == 2
    assert frames[0].startswith("id: ")
    assert json.loads(frames[0].split("data: ", 1)[1])["sequence"] == 1
    assert frames[1] == 'event: overflow\ndata: {"channel": "merchant:m-1"}\n\n'
