"""
Notification Inbox - per-recipient in-app notifications

Rows are written by OrderEventRecorder together with each order event, so a
merchant or courier who was offline while the live stream ran still finds
every alert here.
"""
import logging
from typing import List, Tuple

from sqlalchemy.orm import Session

from delivery_service.database import transaction
from delivery_service.exceptions import NotFound
from delivery_service.models.events import Notification
from delivery_service.repositories.event_repository import NotificationRepository
from delivery_service.security import Principal, Role
from delivery_service.timeutils import utcnow

logger = logging.getLogger(__name__)


def inbox_keys(principal: Principal) -> List[str]:
    """Recipients whose notifications the principal reads"""
    keys = [principal.id]
    if principal.has(Role.MERCHANT_OWNER) and principal.merchant_id:
        keys.append(f"merchant:{principal.merchant_id}")
    return keys


class NotificationInbox:
    """Reads and read-marks of a principal's notifications"""
    
    def __init__(self, db: Session):
        self.db = db
        self.repository = NotificationRepository(db)
    
    def list_notifications(self, principal: Principal, unread_only: bool = False,
                           limit: int = 50) -> Tuple[List[Notification], int]:
        """Newest first, plus the unread count"""
        keys = inbox_keys(principal)
        items = self.repository.get_for_recipients(keys, unread_only=unread_only, limit=limit)
        return items, self.repository.count_unread(keys)
    
    def mark_read(self, notification_id: str, principal: Principal) -> Notification:
        """
        Mark one notification as read; marking it again is a no-op
        
        Raises:
            NotFound: No such notification in the principal's inbox
        """
        keys = inbox_keys(principal)
        with transaction(self.db):
            notification = self.repository.get_by_id(notification_id)
            if notification is None or notification.recipient not in keys:
                raise NotFound(f"Notification with id={notification_id} not found")
            self.repository.mark_read(keys, utcnow(), notification_id=notification_id)
        self.db.refresh(notification)
        return notification
    
    def mark_all_read(self, principal: Principal) -> int:
        with transaction(self.db):
            count = self.repository.mark_read(inbox_keys(principal), utcnow())
        logger.info("Marked %s notification(s) read for %s", count, principal.id)
        return count
