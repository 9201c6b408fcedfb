"""
Push notification texts per event and audience
"""
from dataclasses import dataclass, field
from typing import List, Optional

from delivery_service.schemas.events import Audience, EventType, NotificationEvent


@dataclass(frozen=True)
class PushMessage:
    target: str
    title: str
    body: str
    tag: str
    data: dict = field(default_factory=dict)


STATUS_LABELS = {
    "pending": "Order received",
    "confirmed": "Order confirmed",
    "preparing": "Being prepared",
    "ready": "Ready",
    "awaiting_driver": "Waiting for a courier",
    "out_for_delivery": "Out for delivery",
    "delivered": "Delivered",
    "cancelled": "Cancelled",
}

# (event type, audience) -> (title, body template)
TEMPLATES = {
    (EventType.ORDER_CREATED, Audience.MERCHANT): ("New order!", "Order #{short} - total {total}"),
    (EventType.STATUS_CHANGED, Audience.MERCHANT): ("Order updated", "Order #{short}: {label}"),
    (EventType.STATUS_CHANGED, Audience.CUSTOMER): ("Your order: {label}", "Order #{short} is now {label_lower}"),
    (EventType.STATUS_CHANGED, Audience.COURIER): ("Delivery updated", "Order #{short}: {label}"),
    (EventType.COURIER_OFFERED, Audience.COURIER): ("New delivery available!", "Accept the delivery of order #{short} to start."),
    (EventType.OFFER_ACCEPTED, Audience.MERCHANT): ("Courier accepted", "Order #{short} was accepted by the courier"),
    (EventType.OFFER_ACCEPTED, Audience.CUSTOMER): ("Courier assigned", "A courier will pick up order #{short}"),
    (EventType.OFFER_ACCEPTED, Audience.COURIER): ("Delivery confirmed", "Head to the store for order #{short}"),
    (EventType.OFFER_DECLINED, Audience.MERCHANT): ("Courier declined", "Order #{short} needs another courier"),
    (EventType.OFFER_EXPIRED, Audience.MERCHANT): ("Offer expired", "No answer for order #{short}; offer it again"),
    (EventType.OFFER_EXPIRED, Audience.COURIER): ("Offer withdrawn", "The offer for order #{short} expired"),
    (EventType.DELIVERY_STARTED, Audience.MERCHANT): ("Out for delivery", "Order #{short} left the store"),
    (EventType.DELIVERY_STARTED, Audience.CUSTOMER): ("On the way!", "Order #{short} is out for delivery"),
    (EventType.DELIVERY_STARTED, Audience.COURIER): ("Delivery started", "Take order #{short} to the customer"),
}


def _target(event: NotificationEvent, audience: Audience) -> Optional[str]:
    if audience == Audience.MERCHANT:
        return f"merchant:{event.merchant_id}"
    if audience == Audience.COURIER:
        return event.courier_principal_id
    return event.customer_principal_id


def build_push_messages(event: NotificationEvent) -> List[PushMessage]:
    """One push per audience that has a template and a reachable target"""
    status = event.payload.get("status", "")
    label = STATUS_LABELS.get(status, status)
    context = {
        "short": event.order_id[:8],
        "total": event.payload.get("total", ""),
        "label": label,
        "label_lower": label.lower(),
    }
    messages = []
    for audience in event.audiences:
        template = TEMPLATES.get((event.event_type, audience))
        target = _target(event, audience)
        if template is None or not target:
            continue
        title, body = template
        messages.append(PushMessage(
            target=target,
            title=title.format(**context),
            body=body.format(**context),
            tag=f"order-{event.order_id}",
            data={
                "type": event.event_type.value,
                "order_id": event.order_id,
                "merchant_id": event.merchant_id,
                "status": status,
            },
        ))
    return messages
