"""
Offer reconciliation - withdraws courier offers nobody answered
"""
import logging
from datetime import timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from delivery_service.config import settings
from delivery_service.database import retry_transient
from delivery_service.exceptions import DeliveryError
from delivery_service.repositories.order_repository import OrderRepository
from delivery_service.services.dispatch_service import DispatchCoordinator
from delivery_service.services.notification_fanout import NotificationFanout
from delivery_service.timeutils import utcnow

logger = logging.getLogger(__name__)


def reconcile_stale_offers(session_factory: Callable[[], Session], fanout: NotificationFanout,
                           timeout_seconds: Optional[int] = None, now=None) -> List[str]:
    """
    Revert every offer older than the timeout to ready/idle
    
    Each order is handled in its own transaction; an offer answered while the
    job runs is left alone.
    
    Returns:
        IDs of orders whose offers were withdrawn
    """
    timeout = timeout_seconds if timeout_seconds is not None else settings.OFFER_TIMEOUT_SECONDS
    cutoff = (now or utcnow()) - timedelta(seconds=timeout)
    
    with session_factory() as db:
        stale_ids = [order.id for order in OrderRepository(db).get_stale_offers(cutoff)]
    
    expired = []
    for order_id in stale_ids:
        with session_factory() as db:
            try:
                order = retry_transient(DispatchCoordinator(db, fanout).expire_offer)(order_id, cutoff)
            except DeliveryError as e:
                logger.info("Skipping offer on order %s: %s", order_id, e.message)
                continue
        if order is not None:
            expired.append(order_id)
    
    if expired:
        logger.info("Withdrew %d stale offer(s)", len(expired))
    return expired
