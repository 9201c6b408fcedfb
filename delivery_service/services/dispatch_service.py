"""
Dispatch Coordinator - courier offer/accept/decline handshake

Each operation is one transaction covering both the order row (optimistic
version check) and the courier row (conditional update on its dispatch
status). If either write loses a race the whole operation rolls back, so two
concurrent offers for the same order or courier resolve to exactly one winner.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from delivery_service.database import transaction
from delivery_service.exceptions import (
    AlreadyOffered, DriverUnavailable, Forbidden, NotFound, OrderNotReady, PreconditionMismatch
)
from delivery_service.models.courier import Courier, CourierStatus
from delivery_service.models.order import Order, OrderStatus
from delivery_service.repositories.courier_repository import CourierRepository
from delivery_service.repositories.order_repository import OrderRepository
from delivery_service.schemas.events import Audience, EventType
from delivery_service.security import Principal, Role
from delivery_service.services.notification_fanout import NotificationFanout
from delivery_service.services.order_events import OrderEventRecorder
from delivery_service.services.order_state_machine import OrderStateMachine
from delivery_service.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)


def courier_principal(courier: Courier) -> Principal:
    return Principal(
        id=courier.principal_id or f"courier:{courier.id}",
        roles=frozenset({Role.COURIER}),
        merchant_id=courier.merchant_id,
        courier_id=courier.id,
    )


class DispatchCoordinator:
    """Binds ready orders to couriers"""
    
    def __init__(self, db: Session, fanout: NotificationFanout):
        self.db = db
        self.fanout = fanout
        self.orders = OrderRepository(db)
        self.couriers = CourierRepository(db)
        self.recorder = OrderEventRecorder(db)
    
    def _load_order(self, order_id: str) -> Order:
        order = self.orders.get_by_id(order_id)
        if order is None:
            raise NotFound(f"Order with id={order_id} not found")
        return order
    
    def _load_courier(self, courier_id: str) -> Courier:
        courier = self.couriers.get_by_id(courier_id)
        if courier is None:
            raise NotFound(f"Courier with id={courier_id} not found")
        return courier
    
    @staticmethod
    def _require_offered_to(order: Order, courier_id: str) -> None:
        if order.status != OrderStatus.AWAITING_DRIVER.value:
            raise OrderNotReady(f"Order {order.id} has no pending offer (status '{order.status}')")
        if order.assigned_courier_id != courier_id:
            raise Forbidden(f"Order {order.id} was not offered to courier {courier_id}")
    
    def _move_courier(self, courier_id: str, expected: CourierStatus, new: CourierStatus) -> None:
        if not self.couriers.transition(courier_id, expected, new):
            raise PreconditionMismatch(f"Courier {courier_id} is no longer {expected.value}")
    
    def offer(self, order_id: str, courier_id: str, requesting_principal: Principal) -> Order:
        """
        Offer a ready order to one idle courier of the same merchant
        
        Raises:
            Forbidden: Principal is not the merchant owner or a super-admin
            AlreadyOffered: Order already awaiting a courier or already committed
            OrderNotReady: Order status is not ready
            DriverUnavailable: Courier inactive, unavailable, busy or of another merchant
        """
        with transaction(self.db):
            order = self._load_order(order_id)
            if not requesting_principal.can_manage(order.merchant_id):
                raise Forbidden(f"Principal {requesting_principal.id} cannot dispatch order {order_id}")
            if order.status == OrderStatus.AWAITING_DRIVER.value:
                raise AlreadyOffered(f"Order {order_id} already has an outstanding offer")
            if order.status != OrderStatus.READY.value:
                raise OrderNotReady(f"Order {order_id} is '{order.status}', not ready")
            if order.assigned_courier_id:
                raise AlreadyOffered(f"Order {order_id} is already committed to a courier")
            
            courier = self._load_courier(courier_id)
            if courier.merchant_id != order.merchant_id:
                raise DriverUnavailable(f"Courier {courier_id} does not work for this merchant")
            if not courier.is_active or not courier.is_available or courier.dispatch_status != CourierStatus.IDLE.value:
                raise DriverUnavailable(f"Courier {courier_id} is not available")
            # Reserve the courier first; the conditional update is the real guard.
            if not self.couriers.reserve_for_offer(courier_id, order.merchant_id):
                raise DriverUnavailable(f"Courier {courier_id} was taken by another order")
            
            event = self.recorder.write(
                order,
                {
                    "status": OrderStatus.AWAITING_DRIVER.value,
                    "assigned_courier_id": courier_id,
                    "offered_at": utcnow(),
                },
                EventType.COURIER_OFFERED,
                [Audience.COURIER],
                courier=courier,
            )
        
        logger.info("Order %s offered to courier %s", order_id, courier_id)
        self.fanout.publish(event)
        return self._load_order(order_id)
    
    def accept(self, order_id: str, courier_id: str) -> Order:
        """awaiting_driver -> ready (committed); courier -> in_delivery"""
        with transaction(self.db):
            order = self._load_order(order_id)
            self._require_offered_to(order, courier_id)
            courier = self._load_courier(courier_id)
            self._move_courier(courier_id, CourierStatus.PENDING_ACCEPTANCE, CourierStatus.IN_DELIVERY)
            event = self.recorder.write(
                order,
                {"status": OrderStatus.READY.value, "offered_at": None},
                EventType.OFFER_ACCEPTED,
                [Audience.MERCHANT, Audience.CUSTOMER, Audience.COURIER],
                courier=courier,
            )
        
        logger.info("Courier %s accepted order %s", courier_id, order_id)
        self.fanout.publish(event)
        return self._load_order(order_id)
    
    def decline(self, order_id: str, courier_id: str) -> Order:
        """awaiting_driver -> ready (unassigned); courier -> idle/available"""
        with transaction(self.db):
            order = self._load_order(order_id)
            self._require_offered_to(order, courier_id)
            courier = self._load_courier(courier_id)
            self._move_courier(courier_id, CourierStatus.PENDING_ACCEPTANCE, CourierStatus.IDLE)
            event = self.recorder.write(
                order,
                {"status": OrderStatus.READY.value, "assigned_courier_id": None, "offered_at": None},
                EventType.OFFER_DECLINED,
                [Audience.MERCHANT],
                courier=courier,
                declined_by=courier_id,
            )
        
        logger.info("Courier %s declined order %s", courier_id, order_id)
        self.fanout.publish(event)
        return self._load_order(order_id)
    
    def start_delivery(self, order_id: str, courier_id: str) -> Order:
        """ready (committed) -> out_for_delivery; only the committed courier"""
        with transaction(self.db):
            order = self._load_order(order_id)
            if order.status != OrderStatus.READY.value or not order.assigned_courier_id:
                raise OrderNotReady(f"Order {order_id} is not waiting for pickup")
            if order.assigned_courier_id != courier_id:
                raise Forbidden(f"Order {order_id} is committed to another courier")
            courier = self._load_courier(courier_id)
            if courier.dispatch_status != CourierStatus.IN_DELIVERY.value:
                raise PreconditionMismatch(f"Courier {courier_id} is '{courier.dispatch_status}'")
            event = self.recorder.write(
                order,
                {"status": OrderStatus.OUT_FOR_DELIVERY.value},
                EventType.DELIVERY_STARTED,
                [Audience.MERCHANT, Audience.CUSTOMER, Audience.COURIER],
                courier=courier,
            )
        
        logger.info("Courier %s picked up order %s", courier_id, order_id)
        self.fanout.publish(event)
        return self._load_order(order_id)
    
    def complete(self, order_id: str, courier_id: str) -> Order:
        """Courier hands the order over; delegates to the state machine"""
        courier = self._load_courier(courier_id)
        state_machine = OrderStateMachine(self.db, self.fanout)
        return state_machine.advance(order_id, OrderStatus.DELIVERED, courier_principal(courier))
    
    def expire_offer(self, order_id: str, offered_before: datetime) -> Optional[Order]:
        """
        Withdraw an offer nobody answered; used by the reconciliation job
        
        Returns:
            The reverted order, or None if the offer was answered meanwhile
        """
        with transaction(self.db):
            order = self._load_order(order_id)
            if (order.status != OrderStatus.AWAITING_DRIVER.value or order.offered_at is None
                    or as_utc(order.offered_at) >= as_utc(offered_before)):
                return None
            courier_id = order.assigned_courier_id
            courier = self._load_courier(courier_id)
            self._move_courier(courier_id, CourierStatus.PENDING_ACCEPTANCE, CourierStatus.IDLE)
            event = self.recorder.write(
                order,
                {"status": OrderStatus.READY.value, "assigned_courier_id": None, "offered_at": None},
                EventType.OFFER_EXPIRED,
                [Audience.MERCHANT, Audience.COURIER],
                courier=courier,
            )
        
        logger.info("Offer of order %s to courier %s expired", order_id, courier_id)
        self.fanout.publish(event)
        return self._load_order(order_id)
