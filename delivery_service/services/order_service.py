"""
Order Service - checkout and read-side business logic
"""
import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from delivery_service.database import transaction
from delivery_service.exceptions import InvalidOrder, NotFound
from delivery_service.models.catalog import OptionGroup, Product, SelectionType
from delivery_service.models.events import NotificationLog
from delivery_service.models.order import Order, OrderLineItem, OrderStatus, PaymentMethod, PaymentStatus
from delivery_service.repositories.catalog_repository import CatalogRepository
from delivery_service.repositories.courier_repository import CourierRepository
from delivery_service.repositories.event_repository import NotificationLogRepository
from delivery_service.repositories.order_repository import OrderRepository
from delivery_service.schemas.events import Audience, EventType
from delivery_service.schemas.order import CourierPosition, OrderCreate, TrackingResponse
from delivery_service.security import Principal, require_courier_access, require_merchant_access
from delivery_service.services.coupon_service import CouponService
from delivery_service.services.location_tracker import LocationTracker
from delivery_service.services.notification_fanout import NotificationFanout
from delivery_service.services.order_events import OrderEventRecorder, build_event, order_snapshot
from delivery_service.services.pricing import ChoiceSpec, GroupSpec, LineQuote, price_line, price_order, to_money

logger = logging.getLogger(__name__)

# Statuses in which the customer can see where the courier is
TRACKABLE_STATUSES = {OrderStatus.READY.value, OrderStatus.OUT_FOR_DELIVERY.value}


def group_spec(group: OptionGroup) -> GroupSpec:
    return GroupSpec(
        id=group.id,
        name=group.name,
        selection_type=SelectionType(group.selection_type),
        is_required=group.is_required,
        min_selections=group.min_selections or 0,
        max_selections=group.max_selections,
        choices=[
            ChoiceSpec(id=choice.id, name=choice.name, price_delta=Decimal(choice.price_delta))
            for choice in group.choices
        ],
    )


def check_change_fields(payment_method: PaymentMethod, needs_change: bool,
                        change_for: Optional[Decimal], total: Decimal) -> None:
    """Change for cash payments only, and never less than the total"""
    if payment_method != PaymentMethod.CASH:
        if needs_change or change_for is not None:
            raise InvalidOrder("Change is only available for cash payments")
        return
    if needs_change and change_for is None:
        raise InvalidOrder("change_for is required when change is needed")
    if change_for is not None and not needs_change:
        raise InvalidOrder("change_for given but needs_change is false")
    if change_for is not None and change_for < total:
        raise InvalidOrder(f"change_for ({change_for}) is less than the order total ({total})")


class OrderService:
    """Service layer for order checkout and queries"""
    
    def __init__(self, db: Session, fanout: NotificationFanout):
        self.db = db
        self.fanout = fanout
        self.repository = OrderRepository(db)
        self.catalog = CatalogRepository(db)
        self.couriers = CourierRepository(db)
        self.coupons = CouponService(db)
        self.events = NotificationLogRepository(db)
        self.recorder = OrderEventRecorder(db)
    
    def get_order(self, order_id: str) -> Order:
        """Get order by ID"""
        order = self.repository.get_by_id(order_id)
        if order is None:
            raise NotFound(f"Order with id={order_id} not found")
        return order
    
    def get_merchant_orders(self, merchant_id: str, principal: Principal, status: Optional[OrderStatus] = None,
                            skip: int = 0, limit: int = 100) -> List[Order]:
        require_merchant_access(principal, merchant_id)
        return self.repository.get_by_merchant(
            merchant_id, status=status.value if status else None, skip=skip, limit=limit
        )
    
    def count_merchant_orders(self, merchant_id: str, status: Optional[OrderStatus] = None) -> int:
        return self.repository.count(merchant_id=merchant_id, status=status.value if status else None)
    
    def get_courier_orders(self, courier_id: str, principal: Principal) -> List[Order]:
        """Active deliveries of a courier, oldest first"""
        courier = self.couriers.get_by_id(courier_id)
        if courier is None:
            raise NotFound(f"Courier with id={courier_id} not found")
        if not principal.can_manage(courier.merchant_id):
            require_courier_access(principal, courier_id)
        return self.repository.get_active_for_courier(courier_id)
    
    def get_event_log(self, order_id: str) -> List[NotificationLog]:
        self.get_order(order_id)
        return self.events.get_for_order(order_id)
    
    def get_tracking(self, order_id: str) -> TrackingResponse:
        """Order status plus the courier's last position while it is on the way"""
        order = self.get_order(order_id)
        tracking = TrackingResponse(order_id=order.id, status=OrderStatus(order.status))
        if not order.assigned_courier_id or order.status not in TRACKABLE_STATUSES:
            return tracking
        
        courier = self.couriers.get_by_id(order.assigned_courier_id)
        tracking.courier_id = courier.id
        tracking.courier_name = courier.name
        position = LocationTracker(self.db).get_position(courier.id)
        if position is not None:
            tracking.courier_position = CourierPosition(
                latitude=position.latitude,
                longitude=position.longitude,
                reported_at=position.reported_at,
            )
        return tracking
    
    def _price_item(self, merchant_id: str, item) -> LineQuote:
        product: Product = self.catalog.get_product(item.product_id)
        if product is None or product.merchant_id != merchant_id:
            raise NotFound(f"Product {item.product_id} not found")
        if not product.is_available:
            raise InvalidOrder(f"Product '{product.name}' is not available")
        return price_line(
            product_id=product.id,
            product_name=product.name,
            base_price=product.price,
            groups=[group_spec(group) for group in product.option_groups],
            selections=item.selections,
            quantity=item.quantity,
        )
    
    def create_order(self, order_data: OrderCreate, principal: Optional[Principal] = None) -> Order:
        """
        Create new order
        
        Steps:
        1. Price every line from the catalog snapshot
        2. Validate the coupon against the subtotal (no use consumed yet)
        3. Compute total = subtotal - discount + delivery fee
        4. Validate cash change fields
        5. Save order and line items at 'pending'
        6. Publish order_created to the merchant
        
        Raises:
            NotFound: Unknown product
            InvalidOptionSelection, MissingRequiredSelection: Bad option choices
            CouponError subclasses: Coupon rejected
            InvalidOrder: Inconsistent payment/change fields
        """
        # Step 1: Pricing
        quote = price_order(self._price_item(order_data.merchant_id, item) for item in order_data.items)
        subtotal = quote.subtotal
        
        # Step 2: Coupon preview
        discount = Decimal("0.00")
        coupon_id = None
        coupon_code = None
        if order_data.coupon_code:
            validation = self.coupons.validate_and_price(order_data.coupon_code, order_data.merchant_id, subtotal)
            validation.raise_for_reason()
            discount = validation.discount_amount
            coupon_id = validation.coupon.id
            coupon_code = validation.coupon.code
        
        # Step 3: Totals
        delivery_fee = to_money(order_data.delivery_fee)
        total = to_money(subtotal - discount + delivery_fee)
        
        # Step 4: Cash change
        check_change_fields(order_data.payment_method, order_data.needs_change, order_data.change_for, total)
        
        # Step 5: Save
        items = [
            OrderLineItem(
                position=index,
                product_id=line.product_id,
                product_name=line.product_name,
                unit_price=line.unit_price,
                quantity=line.quantity,
                options=[option.as_dict() for option in line.options],
                line_total=line.line_total,
                notes=order_data.items[index].notes,
            )
            for index, line in enumerate(quote.lines)
        ]
        order_dict = {
            "merchant_id": order_data.merchant_id,
            "customer_principal_id": principal.id if principal else None,
            "customer_name": order_data.customer_name,
            "customer_phone": order_data.customer_phone,
            "customer_email": order_data.customer_email,
            "delivery_address_id": order_data.delivery_address_id,
            "payment_method": order_data.payment_method.value,
            "payment_status": PaymentStatus.PENDING.value,
            "subtotal": subtotal,
            "discount_amount": discount,
            "delivery_fee": delivery_fee,
            "total": total,
            "coupon_id": coupon_id,
            "coupon_code": coupon_code,
            "notes": order_data.notes,
            "needs_change": order_data.needs_change,
            "change_for": order_data.change_for,
            "status": OrderStatus.PENDING.value,
            "version": 1,
            "event_seq": 1,
        }
        
        with transaction(self.db):
            order = self.repository.create(order_dict, items)
            event = build_event(
                order, EventType.ORDER_CREATED, [Audience.MERCHANT], 1,
                dict(order_snapshot(order), item_count=len(items)),
            )
            self.recorder.record(event)
        
        logger.info("Order %s created for merchant %s (total %s)", order.id, order.merchant_id, total)
        
        # Step 6: Publish
        self.fanout.publish(event)
        return self.get_order(order.id)
