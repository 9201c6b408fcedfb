"""
Repositories package
"""
from delivery_service.repositories.order_repository import OrderRepository, COURIER_ACTIVE_STATUSES
from delivery_service.repositories.courier_repository import CourierRepository
from delivery_service.repositories.coupon_repository import CouponRepository
from delivery_service.repositories.catalog_repository import CatalogRepository
from delivery_service.repositories.event_repository import (
    NotificationLogRepository, NotificationRepository, ProcessedEventRepository
)

__all__ = [
    "OrderRepository",
    "COURIER_ACTIVE_STATUSES",
    "CourierRepository",
    "CouponRepository",
    "CatalogRepository",
    "NotificationLogRepository",
    "NotificationRepository",
    "ProcessedEventRepository",
]
