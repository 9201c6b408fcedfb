"""
SQLAlchemy Coupon model
"""
import enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from delivery_service.database import Base
from delivery_service.models.order import new_id


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class Coupon(Base):
    """Merchant-issued discount code"""
    
    __tablename__ = "coupons"
    
    id = Column(String(36), primary_key=True, default=new_id)
    merchant_id = Column(String(36), nullable=False, index=True)
    code = Column(String(64), nullable=False)
    description = Column(Text, nullable=True)
    discount_type = Column(String(16), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    min_order_value = Column(Numeric(10, 2), nullable=True)
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    __table_args__ = (
        UniqueConstraint("merchant_id", "code", name="uq_coupon_merchant_code"),
        CheckConstraint("discount_value >= 0", name="check_discount_value_non_negative"),
        CheckConstraint("discount_type IN ('percentage', 'fixed')", name="check_discount_type_valid"),
        CheckConstraint("max_uses IS NULL OR current_uses <= max_uses", name="check_uses_within_cap"),
    )
    
    def __repr__(self):
        return f"<Coupon(code='{self.code}', merchant_id={self.merchant_id}, uses={self.current_uses}/{self.max_uses})>"
