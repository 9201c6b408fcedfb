"""
Payment provider webhook
"""
import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from delivery_service.api.deps import call_with_retry, get_fanout
from delivery_service.config import settings
from delivery_service.database import get_db
from delivery_service.exceptions import Unauthenticated
from delivery_service.schemas.payment import PaymentWebhook
from delivery_service.services.notification_fanout import NotificationFanout
from delivery_service.services.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


def verify_webhook_secret(x_webhook_secret: Optional[str] = Header(None)) -> None:
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, settings.PAYMENT_WEBHOOK_SECRET):
        raise Unauthenticated("Invalid webhook secret")


@router.post("/webhook", dependencies=[Depends(verify_webhook_secret)], summary="Payment outcome")
def payment_webhook(
    webhook: PaymentWebhook,
    db: Session = Depends(get_db),
    fanout: NotificationFanout = Depends(get_fanout)
):
    """
    Record a charge outcome; redeliveries of the same event_id are ignored
    
    A successful charge of a prepaid order still at 'pending' confirms it.
    """
    processed = call_with_retry(PaymentService(db, fanout).process_webhook, webhook)
    return {"event_id": webhook.event_id, "processed": processed}
