"""
Pydantic schema for the payment provider webhook
"""
from typing import Literal, Optional

from pydantic import BaseModel, Field


class PaymentWebhook(BaseModel):
    """Charge outcome pushed by the payment provider"""
    event_id: str = Field(..., description="Provider event ID, used for idempotency")
    order_id: str
    status: Literal["succeeded", "failed", "refunded"]
    provider_reference: Optional[str] = None
