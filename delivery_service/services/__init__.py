"""
Services package
"""
from delivery_service.services.coupon_service import CouponService
from delivery_service.services.courier_service import CourierService
from delivery_service.services.dispatch_service import DispatchCoordinator
from delivery_service.services.location_tracker import LocationTracker
from delivery_service.services.notification_fanout import NotificationFanout, NotificationHub
from delivery_service.services.notification_inbox import NotificationInbox
from delivery_service.services.order_service import OrderService
from delivery_service.services.order_state_machine import OrderStateMachine
from delivery_service.services.payment_service import PaymentService
from delivery_service.services.push_client import PushClient

__all__ = [
    "CouponService",
    "CourierService",
    "DispatchCoordinator",
    "LocationTracker",
    "NotificationFanout",
    "NotificationHub",
    "NotificationInbox",
    "OrderService",
    "OrderStateMachine",
    "PaymentService",
    "PushClient",
]
