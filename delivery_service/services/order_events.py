"""
Order writes that emit a NotificationEvent

Every order transition goes through OrderEventRecorder.write: one optimistic
compare-and-set on the order row, the next per-order sequence number, and the
audit-log row plus one inbox notification per recipient, all inside the
caller's transaction. Publishing to the fan-out happens after commit.
"""
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from delivery_service.config import settings
from delivery_service.exceptions import PreconditionMismatch
from delivery_service.models.courier import Courier
from delivery_service.models.events import Notification, NotificationLog
from delivery_service.models.order import Order
from delivery_service.repositories.courier_repository import CourierRepository
from delivery_service.repositories.event_repository import NotificationLogRepository, NotificationRepository
from delivery_service.repositories.order_repository import OrderRepository
from delivery_service.schemas.events import Audience, EventType, NotificationEvent
from delivery_service.services.push_messages import build_push_messages
from delivery_service.timeutils import as_utc

SNAPSHOT_FIELDS = (
    "status", "payment_status", "payment_method", "subtotal", "discount_amount",
    "delivery_fee", "total", "assigned_courier_id", "customer_name", "delivered_at",
)


def _plain(value):
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return value


def order_snapshot(order: Order, **overrides) -> dict:
    """JSON-safe view of the order after the pending write"""
    snapshot = {name: _plain(getattr(order, name)) for name in SNAPSHOT_FIELDS}
    snapshot.update({name: _plain(value) for name, value in overrides.items() if name in SNAPSHOT_FIELDS})
    snapshot["order_id"] = order.id
    return snapshot


def build_event(order: Order, event_type: EventType, audiences: Iterable[Audience], sequence: int,
                payload: dict, courier: Optional[Courier] = None) -> NotificationEvent:
    return NotificationEvent(
        event_type=event_type,
        source=settings.SERVICE_NAME,
        order_id=order.id,
        merchant_id=order.merchant_id,
        courier_id=courier.id if courier else None,
        courier_principal_id=courier.principal_id if courier else None,
        customer_principal_id=order.customer_principal_id,
        sequence=sequence,
        audiences=list(audiences),
        payload=payload,
    )


def event_from_log(entry: NotificationLog) -> NotificationEvent:
    """Rebuild the published event from its audit-log row"""
    return NotificationEvent(
        event_id=entry.event_id,
        event_type=EventType(entry.event_type),
        source=settings.SERVICE_NAME,
        occurred_at=as_utc(entry.occurred_at),
        order_id=entry.order_id,
        merchant_id=entry.merchant_id,
        courier_id=entry.courier_id,
        courier_principal_id=entry.courier_principal_id,
        customer_principal_id=entry.customer_principal_id,
        sequence=entry.sequence,
        audiences=[Audience(audience) for audience in entry.audiences],
        payload=entry.payload,
    )


def inbox_notifications(event: NotificationEvent) -> List[Notification]:
    """One in-app notification per push recipient of the event"""
    notifications = {}
    for message in build_push_messages(event):
        notifications.setdefault(message.target, Notification(
            recipient=message.target,
            order_id=event.order_id,
            event_id=event.event_id,
            event_type=event.event_type.value,
            title=message.title,
            body=message.body,
            data=message.data,
            created_at=event.occurred_at,
        ))
    return list(notifications.values())


class OrderEventRecorder:
    """Applies an order write and records the event describing it"""
    
    def __init__(self, db: Session):
        self.db = db
        self.orders = OrderRepository(db)
        self.couriers = CourierRepository(db)
        self.log = NotificationLogRepository(db)
        self.inbox = NotificationRepository(db)
    
    def write(self, order: Order, values: dict, event_type: EventType, audiences: Iterable[Audience],
              courier: Optional[Courier] = None, **extra_payload) -> NotificationEvent:
        """
        Compare-and-set the order and record one event
        
        Raises:
            PreconditionMismatch: Someone else wrote the order since it was read
        """
        sequence = order.event_seq + 1
        if not self.orders.compare_and_set(order.id, order.version, dict(values, event_seq=sequence)):
            raise PreconditionMismatch(f"Order {order.id} was modified concurrently")
        
        if courier is None:
            courier_id = values.get("assigned_courier_id", order.assigned_courier_id)
            courier = self.couriers.get_by_id(courier_id) if courier_id else None
        
        payload = order_snapshot(order, **values)
        payload["previous_status"] = _plain(order.status)
        payload.update(extra_payload)
        event = build_event(order, event_type, audiences, sequence, payload, courier)
        self.record(event)
        return event
    
    def record(self, event: NotificationEvent) -> None:
        self.log.add(NotificationLog(
            event_id=event.event_id,
            order_id=event.order_id,
            sequence=event.sequence,
            event_type=event.event_type.value,
            merchant_id=event.merchant_id,
            courier_id=event.courier_id,
            courier_principal_id=event.courier_principal_id,
            customer_principal_id=event.customer_principal_id,
            audiences=[audience.value for audience in event.audiences],
            payload=event.payload,
            occurred_at=event.occurred_at,
        ))
        self.inbox.add_all(inbox_notifications(event))
