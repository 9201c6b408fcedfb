"""
NotificationEvent wire schema
"""
import enum
import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from delivery_service.timeutils import utcnow


class EventType(str, enum.Enum):
    ORDER_CREATED = "order_created"
    STATUS_CHANGED = "status_changed"
    COURIER_OFFERED = "courier_offered"
    OFFER_ACCEPTED = "offer_accepted"
    OFFER_DECLINED = "offer_declined"
    OFFER_EXPIRED = "offer_expired"
    DELIVERY_STARTED = "delivery_started"


class Audience(str, enum.Enum):
    MERCHANT = "merchant"
    COURIER = "courier"
    CUSTOMER = "customer"


class NotificationEvent(BaseModel):
    """Event emitted on every order transition, in per-order sequence"""
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: EventType
    event_version: str = "1.0"
    source: str = "delivery-service"
    occurred_at: datetime = Field(default_factory=utcnow)
    order_id: str
    merchant_id: str
    courier_id: Optional[str] = None
    courier_principal_id: Optional[str] = None
    customer_principal_id: Optional[str] = None
    sequence: int = Field(..., ge=1, description="Per-order sequence number, gap-free")
    audiences: List[Audience]
    payload: dict = Field(default_factory=dict)
    
    @property
    def routing_key(self) -> str:
        return f"delivery.{self.event_type.value}"
