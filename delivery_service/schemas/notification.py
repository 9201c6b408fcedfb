"""
Pydantic schemas for the in-app notification inbox
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class NotificationResponse(BaseModel):
    id: str
    order_id: str
    event_type: str
    title: str
    body: str
    data: dict
    read_at: Optional[datetime]
    created_at: datetime
    
    model_config = ConfigDict(from_attributes=True)


class NotificationListResponse(BaseModel):
    items: List[NotificationResponse]
    unread: int


class MarkAllReadResult(BaseModel):
    marked: int
