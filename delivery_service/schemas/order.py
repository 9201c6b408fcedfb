"""
Pydantic schemas for order requests/responses
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from delivery_service.models.order import OrderStatus, PaymentMethod, PaymentStatus


class LineItemCreate(BaseModel):
    """Cart line as submitted at checkout"""
    product_id: str = Field(..., description="Catalog product ID")
    quantity: int = Field(..., ge=1, description="Units ordered")
    selections: List[str] = Field(
        default_factory=list,
        description="Option choice IDs in the order they were picked"
    )
    notes: Optional[str] = Field(None, max_length=500)


class OrderCreate(BaseModel):
    """Schema for checkout"""
    merchant_id: str
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_phone: str = Field(..., min_length=8, max_length=32)
    customer_email: Optional[EmailStr] = None
    delivery_address_id: Optional[str] = None
    payment_method: PaymentMethod
    delivery_fee: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    coupon_code: Optional[str] = Field(None, max_length=64)
    notes: Optional[str] = Field(None, max_length=1000)
    needs_change: bool = False
    change_for: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    items: List[LineItemCreate] = Field(..., min_length=1)


class TransitionRequest(BaseModel):
    """Schema for a merchant/courier status move"""
    target_status: OrderStatus
    expected_status: Optional[OrderStatus] = Field(
        None, description="Fail with PreconditionMismatch if the order is no longer in this status"
    )


class CourierAction(BaseModel):
    """Body of offer/accept/decline/start-delivery/complete"""
    courier_id: str


class OrderLineItemResponse(BaseModel):
    product_id: str
    product_name: str
    unit_price: Decimal
    quantity: int
    options: List[dict]
    line_total: Decimal
    notes: Optional[str] = None
    
    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    """Schema for order response"""
    id: str
    merchant_id: str
    customer_name: str
    customer_phone: str
    customer_email: Optional[str]
    delivery_address_id: Optional[str]
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    subtotal: Decimal
    discount_amount: Decimal
    delivery_fee: Decimal
    total: Decimal
    coupon_code: Optional[str]
    notes: Optional[str]
    needs_change: bool
    change_for: Optional[Decimal]
    assigned_courier_id: Optional[str]
    status: OrderStatus
    courier_committed: bool
    version: int
    created_at: datetime
    delivered_at: Optional[datetime]
    items: List[OrderLineItemResponse] = []
    
    model_config = ConfigDict(from_attributes=True)


class OrderListResponse(BaseModel):
    """Schema for list of orders response"""
    orders: List[OrderResponse]
    total: int


class CourierPosition(BaseModel):
    latitude: float
    longitude: float
    reported_at: datetime


class TrackingResponse(BaseModel):
    """Customer tracking view"""
    order_id: str
    status: OrderStatus
    courier_id: Optional[str] = None
    courier_name: Optional[str] = None
    courier_position: Optional[CourierPosition] = None


class EventLogEntry(BaseModel):
    event_id: str
    sequence: int
    event_type: str
    audiences: List[str]
    payload: dict
    occurred_at: datetime
    
    model_config = ConfigDict(from_attributes=True)
