"""
Schemas package
"""
from delivery_service.schemas.events import Audience, EventType, NotificationEvent
from delivery_service.schemas.order import (
    LineItemCreate,
    OrderCreate,
    TransitionRequest,
    CourierAction,
    OrderResponse,
    OrderListResponse,
    TrackingResponse,
    EventLogEntry,
)
from delivery_service.schemas.courier import (
    CourierCreate,
    CourierUpdate,
    AvailabilityUpdate,
    CourierResponse,
    LocationReport,
    LocationReportResult,
    PositionResponse,
)
from delivery_service.schemas.coupon import (
    CouponCreate,
    CouponResponse,
    CouponValidateRequest,
    CouponValidationResponse,
)
from delivery_service.schemas.payment import PaymentWebhook

__all__ = [
    "Audience",
    "EventType",
    "NotificationEvent",
    "LineItemCreate",
    "OrderCreate",
    "TransitionRequest",
    "CourierAction",
    "OrderResponse",
    "OrderListResponse",
    "TrackingResponse",
    "EventLogEntry",
    "CourierCreate",
    "CourierUpdate",
    "AvailabilityUpdate",
    "CourierResponse",
    "LocationReport",
    "LocationReportResult",
    "PositionResponse",
    "CouponCreate",
    "CouponResponse",
    "CouponValidateRequest",
    "CouponValidationResponse",
    "PaymentWebhook",
]
