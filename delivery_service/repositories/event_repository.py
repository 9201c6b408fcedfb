"""
Event Repository - notification audit log, recipient inboxes and processed webhook events
"""
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import desc, update
from sqlalchemy.orm import Session

from delivery_service.models.events import Notification, NotificationLog, ProcessedEvent


class NotificationLogRepository:
    """Repository for the NotificationEvent audit log"""
    
    def __init__(self, db: Session):
        self.db = db
    
    def add(self, entry: NotificationLog) -> NotificationLog:
        self.db.add(entry)
        self.db.flush()
        return entry
    
    def get_for_order(self, order_id: str) -> List[NotificationLog]:
        """Events of an order in commit order"""
        return self.db.query(NotificationLog).filter(
            NotificationLog.order_id == order_id
        ).order_by(NotificationLog.sequence).all()
    
    def get_range(self, order_id: str, first: int, last: int) -> List[NotificationLog]:
        """Events of an order with first <= sequence <= last"""
        return self.db.query(NotificationLog).filter(
            NotificationLog.order_id == order_id,
            NotificationLog.sequence >= first,
            NotificationLog.sequence <= last
        ).order_by(NotificationLog.sequence).all()


class NotificationRepository:
    """Repository for per-recipient in-app notifications"""
    
    def __init__(self, db: Session):
        self.db = db
    
    def add_all(self, notifications: Iterable[Notification]) -> None:
        self.db.add_all(list(notifications))
        self.db.flush()
    
    def get_for_recipients(self, recipients: List[str], unread_only: bool = False,
                           limit: int = 50) -> List[Notification]:
        """Newest first"""
        query = self.db.query(Notification).filter(Notification.recipient.in_(recipients))
        if unread_only:
            query = query.filter(Notification.read_at.is_(None))
        return query.order_by(desc(Notification.created_at), desc(Notification.id)).limit(limit).all()
    
    def count_unread(self, recipients: List[str]) -> int:
        return self.db.query(Notification).filter(
            Notification.recipient.in_(recipients),
            Notification.read_at.is_(None)
        ).count()
    
    def get_by_id(self, notification_id: str) -> Optional[Notification]:
        return self.db.query(Notification).filter(Notification.id == notification_id).first()
    
    def mark_read(self, recipients: List[str], read_at: datetime,
                  notification_id: Optional[str] = None) -> int:
        """Mark unread rows of the recipients as read; one row when notification_id is given"""
        stmt = update(Notification).where(
            Notification.recipient.in_(recipients),
            Notification.read_at.is_(None)
        )
        if notification_id is not None:
            stmt = stmt.where(Notification.id == notification_id)
        result = self.db.execute(stmt.values(read_at=read_at).execution_options(synchronize_session=False))
        return result.rowcount


class ProcessedEventRepository:
    """Repository for tracking processed events (idempotency)"""
    
    def __init__(self, db: Session):
        self.db = db
    
    def is_processed(self, event_id: str) -> bool:
        """Check if event was already processed"""
        return self.db.query(ProcessedEvent).filter(
            ProcessedEvent.event_id == event_id
        ).first() is not None
    
    def mark_processed(self, event_id: str, event_type: str) -> ProcessedEvent:
        """Mark event as processed"""
        processed_event = ProcessedEvent(
            event_id=event_id,
            event_type=event_type
        )
        self.db.add(processed_event)
        self.db.flush()
        return processed_event
