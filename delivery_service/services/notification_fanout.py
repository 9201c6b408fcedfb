"""
Notification Fan-out

NotificationHub delivers events to in-process subscribers (SSE streams for the
merchant dashboard, a courier's app and a customer's tracking view) strictly
in per-order sequence. NotificationFanout adds best-effort push delivery on a
background worker so a slow push channel never holds up a transition.
"""
import logging
import queue
import threading
from collections import OrderedDict, defaultdict
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from delivery_service.repositories.event_repository import NotificationLogRepository
from delivery_service.schemas.events import Audience, NotificationEvent
from delivery_service.services.order_events import event_from_log
from delivery_service.services.push_messages import build_push_messages

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {"delivered", "cancelled"}
MAX_BUFFERED_PER_ORDER = 32
FINISHED_ORDERS_KEPT = 1024

# (order_id, first, last) -> logged events with first <= sequence <= last
Backfill = Callable[[str, int, int], List[NotificationEvent]]


def merchant_channel(merchant_id: str) -> str:
    return f"merchant:{merchant_id}"


def courier_channel(courier_id: str) -> str:
    return f"courier:{courier_id}"


def order_channel(order_id: str) -> str:
    return f"order:{order_id}"


def channels_for(event: NotificationEvent) -> List[str]:
    """Subscriber channels an event is routed to, from its audiences"""
    channels = []
    if Audience.MERCHANT in event.audiences:
        channels.append(merchant_channel(event.merchant_id))
    if Audience.COURIER in event.audiences and event.courier_id:
        channels.append(courier_channel(event.courier_id))
    if Audience.CUSTOMER in event.audiences:
        channels.append(order_channel(event.order_id))
    return channels


class Subscription:
    """A subscriber's bounded inbox on one channel"""
    
    def __init__(self, hub: "NotificationHub", channel: str, maxsize: int = 100):
        self.hub = hub
        self.channel = channel
        self.queue: "queue.Queue[NotificationEvent]" = queue.Queue(maxsize=maxsize)
        self.overflowed = False
        self.closed = False
    
    def offer(self, event: NotificationEvent) -> bool:
        try:
            self.queue.put_nowait(event)
            return True
        except queue.Full:
            self.overflowed = True
            return False
    
    def get(self, timeout: Optional[float] = None) -> Optional[NotificationEvent]:
        """Next event, or None on timeout"""
        try:
            return self.queue.get(timeout=timeout)
        except queue.Empty:
            return None
    
    def close(self) -> None:
        self.hub.unsubscribe(self)


class NotificationHub:
    """
    In-process pub/sub with a per-order reorder buffer
    
    With a backfill source, sequence numbers this process never saw (events
    committed by another worker) are read back from the audit log, so every
    subscriber gets an order's events gap-free and in order.
    """
    
    def __init__(self, subscriber_queue_size: int = 100, backfill: Optional[Backfill] = None):
        self._lock = threading.Lock()
        self._subscribers: Dict[str, List[Subscription]] = defaultdict(list)
        self._next_seq: Dict[str, int] = {}
        self._held: Dict[str, Dict[int, NotificationEvent]] = defaultdict(dict)
        # next sequence of recently finished orders, so late copies stay dropped
        self._finished: "OrderedDict[str, int]" = OrderedDict()
        self._queue_size = subscriber_queue_size
        self.backfill = backfill
    
    def subscribe(self, channel: str) -> Subscription:
        subscription = Subscription(self, channel, maxsize=self._queue_size)
        with self._lock:
            self._subscribers[channel].append(subscription)
        logger.debug("Subscribed to %s", channel)
        return subscription
    
    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._detach(subscription)
    
    def _detach(self, subscription: Subscription) -> None:
        subscription.closed = True
        subscribers = self._subscribers.get(subscription.channel)
        if subscribers and subscription in subscribers:
            subscribers.remove(subscription)
            if not subscribers:
                del self._subscribers[subscription.channel]
    
    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._subscribers.get(channel, []))
    
    def deliver(self, event: NotificationEvent) -> None:
        """
        Route an event to subscribers, holding it back until every lower
        sequence number of the same order has been delivered
        """
        with self._lock:
            order_id = event.order_id
            expected = self._next_seq.get(order_id, self._finished.get(order_id))
            if expected is None:
                # Without a log to read from, the first event seen is the baseline
                expected = 1 if self.backfill is not None else event.sequence
            if event.sequence < expected:
                logger.debug("Dropping duplicate event %s seq=%s", event.event_id, event.sequence)
                return
            
            held = self._held[order_id]
            held[event.sequence] = event
            if expected not in held and self.backfill is not None:
                self._fill_gap(order_id, expected, max(held) - 1, held)
            if len(held) > MAX_BUFFERED_PER_ORDER:
                # A lost event would stall the order forever; skip the gap.
                expected = min(held)
                logger.warning("Sequence gap on order %s, resuming at %s", order_id, expected)
            
            last = None
            while expected in held:
                last = held.pop(expected)
                self._route(last)
                expected += 1
            self._next_seq[order_id] = expected
            
            if not held:
                del self._held[order_id]
                if last is not None and last.payload.get("status") in TERMINAL_STATUSES:
                    self._finish(order_id)
    
    def _finish(self, order_id: str) -> None:
        self._finished[order_id] = self._next_seq.pop(order_id)
        while len(self._finished) > FINISHED_ORDERS_KEPT:
            self._finished.popitem(last=False)
    
    def _fill_gap(self, order_id: str, first: int, last: int, held: Dict[int, NotificationEvent]) -> None:
        for missing in self.backfill(order_id, first, last):
            held.setdefault(missing.sequence, missing)
        logger.debug("Backfilled order %s sequences %s..%s", order_id, first, last)
    
    def _route(self, event: NotificationEvent) -> None:
        for channel in channels_for(event):
            for subscription in list(self._subscribers.get(channel, [])):
                if not subscription.offer(event):
                    logger.warning("Subscriber on %s is too slow, disconnecting", channel)
                    self._detach(subscription)


class AuditLogBackfill:
    """Reads events missing from the hub's view out of the notification log"""
    
    def __init__(self, session_factory):
        self.session_factory = session_factory
    
    def __call__(self, order_id: str, first: int, last: int) -> List[NotificationEvent]:
        db = self.session_factory()
        try:
            entries = NotificationLogRepository(db).get_range(order_id, first, last)
            return [event_from_log(entry) for entry in entries]
        except SQLAlchemyError as e:
            # The held events go out once a later delivery fills the gap
            logger.warning("Could not backfill order %s sequences %s..%s: %s", order_id, first, last, e)
            return []
        finally:
            db.close()


class PushDispatcher(Protocol):
    def dispatch(self, event: NotificationEvent) -> None:
        ...


class NotificationFanout:
    """Publishes each committed transition's event to subscribers and push"""
    
    def __init__(self, hub: NotificationHub, push_dispatcher: Optional[PushDispatcher] = None):
        self.hub = hub
        self.push_dispatcher = push_dispatcher
    
    def publish(self, event: NotificationEvent) -> None:
        self.hub.deliver(event)
        if self.push_dispatcher is None:
            return
        try:
            self.push_dispatcher.dispatch(event)
        except Exception as e:
            # Push is best effort; the transition already committed.
            logger.warning("Failed to hand off push for event %s: %s", event.event_id, e)


class BackgroundPushDispatcher:
    """
    Sends push notifications from a single background worker
    
    One worker keeps pushes for the same order in commit order.
    """
    
    def __init__(self, sender, executor: Optional[ThreadPoolExecutor] = None):
        self.sender = sender
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="push")
    
    def dispatch(self, event: NotificationEvent) -> None:
        self.executor.submit(self._send, event)
    
    def _send(self, event: NotificationEvent) -> None:
        for message in build_push_messages(event):
            try:
                self.sender.send(message)
            except Exception as e:
                logger.warning("Push to %s failed for event %s: %s", message.target, event.event_id, e)
    
    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)


class BrokerPushDispatcher:
    """Hands events to RabbitMQ; the push consumer turns them into notifications"""
    
    def __init__(self, publisher, executor: Optional[ThreadPoolExecutor] = None):
        self.publisher = publisher
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="broker")
    
    def dispatch(self, event: NotificationEvent) -> None:
        self.executor.submit(self.publisher.publish_event, event)
    
    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
