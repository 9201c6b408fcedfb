"""
Shared FastAPI dependencies
"""
import json
import logging
from typing import Iterator, Optional

from delivery_service.config import settings
from delivery_service.database import SessionLocal, retry_transient
from delivery_service.publishers.event_publisher import EventPublisher
from delivery_service.services.notification_fanout import (
    AuditLogBackfill, BackgroundPushDispatcher, BrokerPushDispatcher, NotificationFanout, NotificationHub,
    Subscription,
)
from delivery_service.services.push_client import PushClient

logger = logging.getLogger(__name__)

_fanout: Optional[NotificationFanout] = None


def build_fanout() -> NotificationFanout:
    """Hub plus the push path selected by EVENT_BROKER_ENABLED"""
    if settings.EVENT_BROKER_ENABLED:
        dispatcher = BrokerPushDispatcher(EventPublisher())
        logger.info("Push notifications routed via RabbitMQ exchange %s", settings.RABBITMQ_EXCHANGE)
    else:
        dispatcher = BackgroundPushDispatcher(PushClient())
        logger.info("Push notifications sent in-process (%s)", settings.PUSH_SERVICE)
    return NotificationFanout(NotificationHub(backfill=AuditLogBackfill(SessionLocal)), dispatcher)


def get_fanout() -> NotificationFanout:
    """Process-wide fan-out; its hub is what SSE streams subscribe to"""
    global _fanout
    if _fanout is None:
        _fanout = build_fanout()
    return _fanout


def shutdown_fanout() -> None:
    global _fanout
    if _fanout is not None and _fanout.push_dispatcher is not None:
        _fanout.push_dispatcher.shutdown(wait=True)
    _fanout = None


def call_with_retry(operation, *args, **kwargs):
    """Run a whole business operation, retrying transient store errors"""
    return retry_transient(operation)(*args, **kwargs)


def event_stream(subscription: Subscription, keepalive: Optional[float] = None) -> Iterator[str]:
    """
    Server-Sent Events body for one subscription
    
    Sends a comment line when idle so proxies keep the connection open. Once
    the hub detaches a subscriber that fell behind, the queued events are
    flushed and a final overflow event tells the client to reload and
    reconnect.
    """
    keepalive = keepalive or settings.SSE_KEEPALIVE_SECONDS
    try:
        while True:
            event = subscription.get(timeout=0 if subscription.closed else keepalive)
            if event is None:
                if subscription.closed:
                    break
                yield ": keepalive\n\n"
                continue
            data = json.dumps(event.model_dump(mode="json"))
            yield f"id: {event.event_id}\nevent: {event.event_type.value}\ndata: {data}\n\n"
        if subscription.overflowed:
            data = json.dumps({"channel": subscription.channel})
            yield f"event: overflow\ndata: {data}\n\n"
    finally:
        subscription.close()


