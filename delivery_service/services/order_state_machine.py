"""
Order State Machine

Canonical chain:
    pending -> confirmed -> preparing -> ready -> awaiting_driver
            -> out_for_delivery -> delivered
with cancelled reachable from every non-terminal status.

Merchants move orders forward one step at a time up to ready. The dispatch
steps (ready -> awaiting_driver, awaiting_driver -> ready on accept/decline,
ready -> out_for_delivery on pickup) belong to the DispatchCoordinator.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from delivery_service.database import transaction
from delivery_service.exceptions import Forbidden, InvalidTransition, NotFound, PreconditionMismatch
from delivery_service.models.courier import CourierStatus
from delivery_service.models.order import Order, OrderStatus, PaymentStatus
from delivery_service.repositories.courier_repository import CourierRepository
from delivery_service.repositories.order_repository import COURIER_ACTIVE_STATUSES, OrderRepository
from delivery_service.schemas.events import Audience, EventType
from delivery_service.security import Principal
from delivery_service.services.coupon_service import CouponService
from delivery_service.services.notification_fanout import NotificationFanout
from delivery_service.services.order_events import OrderEventRecorder
from delivery_service.timeutils import utcnow

logger = logging.getLogger(__name__)

CANONICAL_CHAIN = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.AWAITING_DRIVER,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]
TERMINAL_STATUSES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
# Entered only through the dispatch handshake, never by advance()
DISPATCH_ONLY_TARGETS = {OrderStatus.AWAITING_DRIVER, OrderStatus.OUT_FOR_DELIVERY}

STATUS_AUDIENCES = [Audience.MERCHANT, Audience.CUSTOMER, Audience.COURIER]


def successor(status: OrderStatus) -> Optional[OrderStatus]:
    """Next status in the canonical chain, None for terminal statuses"""
    if status not in CANONICAL_CHAIN or status == OrderStatus.DELIVERED:
        return None
    return CANONICAL_CHAIN[CANONICAL_CHAIN.index(status) + 1]


def check_advance(current: OrderStatus, target: OrderStatus) -> None:
    """
    Validate a direct status move
    
    Raises:
        InvalidTransition: Terminal source, skip, backward move, or a
            dispatch-only target
    """
    if current in TERMINAL_STATUSES:
        raise InvalidTransition(f"Order is already {current.value}")
    if target == OrderStatus.CANCELLED:
        return
    if target in DISPATCH_ONLY_TARGETS:
        raise InvalidTransition(f"'{target.value}' is reached only through courier dispatch")
    if successor(current) != target:
        raise InvalidTransition(f"Cannot move from '{current.value}' to '{target.value}'")


class OrderStateMachine:
    """Owns the canonical status of orders"""
    
    def __init__(self, db: Session, fanout: NotificationFanout):
        self.db = db
        self.fanout = fanout
        self.orders = OrderRepository(db)
        self.couriers = CourierRepository(db)
        self.coupons = CouponService(db)
        self.recorder = OrderEventRecorder(db)
    
    def _load(self, order_id: str) -> Order:
        order = self.orders.get_by_id(order_id)
        if order is None:
            raise NotFound(f"Order with id={order_id} not found")
        return order
    
    @staticmethod
    def _authorize(order: Order, target: OrderStatus, actor: Principal) -> None:
        if actor.is_system or actor.can_manage(order.merchant_id):
            return
        # The bound courier may only close its own delivery.
        if (target == OrderStatus.DELIVERED and order.assigned_courier_id
                and actor.is_courier(order.assigned_courier_id)):
            return
        raise Forbidden(f"Principal {actor.id} cannot move order {order.id} to {target.value}")
    
    def advance(self, order_id: str, target_status: OrderStatus, actor: Principal,
                expected_status: Optional[OrderStatus] = None) -> Order:
        """
        Move an order one step along the chain, or cancel it
        
        Args:
            order_id: Order ID
            target_status: Immediate successor of the current status, or cancelled
            actor: Principal requesting the move
            expected_status: If given, the status the caller last saw
        
        Returns:
            Updated order
        
        Raises:
            NotFound, Forbidden, InvalidTransition, PreconditionMismatch,
            CouponUsageLimitReached (confirming an order whose coupon ran out)
        """
        target_status = OrderStatus(target_status)
        with transaction(self.db):
            order = self._load(order_id)
            current = OrderStatus(order.status)
            if expected_status is not None and current != OrderStatus(expected_status):
                raise PreconditionMismatch(
                    f"Order {order_id} is '{current.value}', expected '{OrderStatus(expected_status).value}'"
                )
            self._authorize(order, target_status, actor)
            check_advance(current, target_status)
            
            values = {"status": target_status.value}
            if target_status == OrderStatus.CONFIRMED and order.coupon_id:
                self.coupons.redeem(order.coupon_id)
            if target_status == OrderStatus.DELIVERED:
                values["delivered_at"] = utcnow()
            if target_status == OrderStatus.CANCELLED:
                values["offered_at"] = None
            
            event = self.recorder.write(order, values, EventType.STATUS_CHANGED, STATUS_AUDIENCES)
            
            if target_status in TERMINAL_STATUSES and current.value in COURIER_ACTIVE_STATUSES:
                self._release_courier(order)
        
        logger.info("Order %s: %s -> %s by %s", order_id, current.value, target_status.value, actor.id)
        self.fanout.publish(event)
        return self._load(order_id)
    
    def _release_courier(self, order: Order) -> None:
        courier_id = order.assigned_courier_id
        if not courier_id:
            return
        if self.orders.count_active_for_courier(courier_id, exclude_order_id=order.id):
            logger.info("Courier %s still has active orders, keeping status", courier_id)
            return
        if self.couriers.release(courier_id):
            logger.info("Courier %s released to %s", courier_id, CourierStatus.IDLE.value)
    
    def record_payment(self, order: Order, payment_status: PaymentStatus) -> None:
        """
        Store the payment outcome; not a status transition, so no event
        
        Runs in the caller's transaction.
        """
        if order.payment_status == payment_status.value:
            return
        if not self.orders.compare_and_set(order.id, order.version, {"payment_status": payment_status.value}):
            raise PreconditionMismatch(f"Order {order.id} was modified concurrently")
        logger.info("Order %s payment status: %s", order.id, payment_status.value)
