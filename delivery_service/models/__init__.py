"""
Models package
"""
from delivery_service.models.order import (
    Order, OrderLineItem, OrderStatus, PaymentMethod, PaymentStatus, PREPAID_METHODS
)
from delivery_service.models.courier import Courier, CourierStatus
from delivery_service.models.coupon import Coupon, DiscountType
from delivery_service.models.catalog import Product, OptionGroup, OptionChoice, SelectionType
from delivery_service.models.events import Notification, NotificationLog, ProcessedEvent

__all__ = [
    "Order",
    "OrderLineItem",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "PREPAID_METHODS",
    "Courier",
    "CourierStatus",
    "Coupon",
    "DiscountType",
    "Product",
    "OptionGroup",
    "OptionChoice",
    "SelectionType",
    "Notification",
    "NotificationLog",
    "ProcessedEvent",
]
