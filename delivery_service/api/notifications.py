"""
Notification inbox API endpoints
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from delivery_service.api.deps import call_with_retry
from delivery_service.database import get_db
from delivery_service.schemas.notification import MarkAllReadResult, NotificationListResponse, NotificationResponse
from delivery_service.security import Principal, get_principal
from delivery_service.services.notification_inbox import NotificationInbox

router = APIRouter(prefix="/notifications", tags=["notifications"])


def get_notification_inbox(db: Session = Depends(get_db)) -> NotificationInbox:
    return NotificationInbox(db)


@router.get("", response_model=NotificationListResponse, summary="My notifications")
def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(get_principal),
    inbox: NotificationInbox = Depends(get_notification_inbox)
):
    """
    Notifications of the caller, newest first
    
    A merchant owner also sees the alerts addressed to their merchant.
    """
    items, unread = inbox.list_notifications(principal, unread_only=unread_only, limit=limit)
    return NotificationListResponse(items=items, unread=unread)


@router.post("/read-all", response_model=MarkAllReadResult, summary="Mark all as read")
def mark_all_read(
    principal: Principal = Depends(get_principal),
    inbox: NotificationInbox = Depends(get_notification_inbox)
):
    return MarkAllReadResult(marked=call_with_retry(inbox.mark_all_read, principal))


@router.post("/{notification_id}/read", response_model=NotificationResponse, summary="Mark as read")
def mark_read(
    notification_id: str,
    principal: Principal = Depends(get_principal),
    inbox: NotificationInbox = Depends(get_notification_inbox)
):
    return call_with_retry(inbox.mark_read, notification_id, principal)
