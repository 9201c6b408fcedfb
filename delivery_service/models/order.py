"""
SQLAlchemy Order and OrderLineItem models
"""
import enum
import uuid

from sqlalchemy import (
    JSON, Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from delivery_service.database import Base


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    AWAITING_DRIVER = "awaiting_driver"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
    ONLINE = "online"
    CASH = "cash"
    CARD_ON_DELIVERY = "card_on_delivery"
    INSTANT_TRANSFER = "instant_transfer"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


# Methods settled before the order is prepared; a successful payment
# webhook auto-confirms these.
PREPAID_METHODS = {PaymentMethod.ONLINE, PaymentMethod.INSTANT_TRANSFER}


def _in(values) -> str:
    return ", ".join(f"'{v.value}'" for v in values)


def new_id() -> str:
    return str(uuid.uuid4())


class Order(Base):
    """Order database model"""
    
    __tablename__ = "orders"
    
    id = Column(String(36), primary_key=True, default=new_id)
    merchant_id = Column(String(36), nullable=False, index=True)
    customer_principal_id = Column(String(64), nullable=True, index=True)
    customer_name = Column(String(255), nullable=False)
    customer_phone = Column(String(32), nullable=False)
    customer_email = Column(String(255), nullable=True)
    delivery_address_id = Column(String(64), nullable=True)
    
    payment_method = Column(String(32), nullable=False)
    payment_status = Column(String(32), nullable=False, default=PaymentStatus.PENDING.value)
    
    subtotal = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    delivery_fee = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False)
    coupon_id = Column(String(36), ForeignKey("coupons.id"), nullable=True)
    coupon_code = Column(String(64), nullable=True)
    
    notes = Column(Text, nullable=True)
    needs_change = Column(Boolean, nullable=False, default=False)
    change_for = Column(Numeric(10, 2), nullable=True)
    
    assigned_courier_id = Column(String(36), ForeignKey("couriers.id"), nullable=True, index=True)
    status = Column(String(32), nullable=False, default=OrderStatus.PENDING.value, index=True)
    version = Column(Integer, nullable=False, default=1)  # optimistic lock
    event_seq = Column(Integer, nullable=False, default=0)  # last NotificationEvent sequence
    
    offered_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    
    items = relationship(
        "OrderLineItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderLineItem.position"
    )
    
    # Constraints
    __table_args__ = (
        CheckConstraint("subtotal >= 0", name="check_subtotal_non_negative"),
        CheckConstraint("discount_amount >= 0", name="check_discount_non_negative"),
        CheckConstraint("delivery_fee >= 0", name="check_delivery_fee_non_negative"),
        CheckConstraint("total >= 0", name="check_total_non_negative"),
        CheckConstraint("discount_amount <= subtotal", name="check_discount_within_subtotal"),
        CheckConstraint(f"status IN ({_in(OrderStatus)})", name="check_status_valid"),
        CheckConstraint(f"payment_method IN ({_in(PaymentMethod)})", name="check_payment_method_valid"),
        CheckConstraint(f"payment_status IN ({_in(PaymentStatus)})", name="check_payment_status_valid"),
    )
    
    @property
    def courier_committed(self) -> bool:
        """True once the assigned courier accepted and the order waits for pickup"""
        return self.status == OrderStatus.READY.value and self.assigned_courier_id is not None
    
    def __repr__(self):
        return f"<Order(id={self.id}, merchant_id={self.merchant_id}, status='{self.status}', total={self.total})>"


class OrderLineItem(Base):
    """Line item snapshot; never re-read from the catalog after checkout"""
    
    __tablename__ = "order_line_items"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    product_id = Column(String(36), nullable=False)
    product_name = Column(String(255), nullable=False)  # Denormalized for history
    unit_price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    options = Column(JSON, nullable=False, default=list)  # [{"group", "name", "price_delta"}]
    line_total = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text, nullable=True)
    
    order = relationship("Order", back_populates="items")
    
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="check_quantity_positive"),
    )
    
    def __repr__(self):
        return f"<OrderLineItem(order_id={self.order_id}, product='{self.product_name}', quantity={self.quantity})>"
