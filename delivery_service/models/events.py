"""
SQLAlchemy models for the notification audit log, recipient inboxes and
webhook idempotency
"""
from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from delivery_service.database import Base
from delivery_service.models.order import new_id


class NotificationLog(Base):
    """Audit log of every NotificationEvent, written in the transition's transaction"""
    
    __tablename__ = "notification_log"
    
    event_id = Column(String(36), primary_key=True)
    order_id = Column(String(36), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    event_type = Column(String(64), nullable=False)
    merchant_id = Column(String(36), nullable=False)
    courier_id = Column(String(36), nullable=True)
    courier_principal_id = Column(String(64), nullable=True)
    customer_principal_id = Column(String(64), nullable=True)
    audiences = Column(JSON, nullable=False)
    payload = Column(JSON, nullable=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False)
    
    __table_args__ = (
        UniqueConstraint("order_id", "sequence", name="uq_notification_order_sequence"),
    )
    
    def __repr__(self):
        return f"<NotificationLog(order_id={self.order_id}, sequence={self.sequence}, type='{self.event_type}')>"


class Notification(Base):
    """
    In-app notification for one recipient
    
    recipient is a principal id, or merchant:<merchant_id> for alerts every
    owner of a merchant shares.
    """
    
    __tablename__ = "notifications"
    
    id = Column(String(36), primary_key=True, default=new_id)
    recipient = Column(String(100), nullable=False)
    order_id = Column(String(36), nullable=False)
    event_id = Column(String(36), nullable=False)
    event_type = Column(String(64), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    
    __table_args__ = (
        UniqueConstraint("event_id", "recipient", name="uq_notification_event_recipient"),
        Index("ix_notifications_recipient_created", "recipient", "created_at"),
    )
    
    def __repr__(self):
        return f"<Notification(recipient='{self.recipient}', type='{self.event_type}', read={self.read_at is not None})>"


class ProcessedEvent(Base):
    """Table to track processed inbound webhook events for idempotency"""
    
    __tablename__ = "processed_events"
    
    event_id = Column(String(100), primary_key=True, unique=True, nullable=False)
    event_type = Column(String(100), nullable=False)
    processed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<ProcessedEvent(event_id='{self.event_id}', event_type='{self.event_type}')>"
