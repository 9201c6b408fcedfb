"""
Read-only catalog models consumed by checkout pricing
"""
import enum

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from delivery_service.database import Base
from delivery_service.models.order import new_id


class SelectionType(str, enum.Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"
    HALF_HALF = "half_half"


class Product(Base):
    """Catalog product (managed by the catalog system)"""
    
    __tablename__ = "products"
    
    id = Column(String(36), primary_key=True, default=new_id)
    merchant_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    
    option_groups = relationship(
        "OptionGroup", back_populates="product", cascade="all, delete-orphan", order_by="OptionGroup.position"
    )
    
    __table_args__ = (
        CheckConstraint("price >= 0", name="check_price_positive"),
    )


class OptionGroup(Base):
    __tablename__ = "option_groups"
    
    id = Column(String(36), primary_key=True, default=new_id)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    selection_type = Column(String(16), nullable=False, default=SelectionType.SINGLE.value)
    is_required = Column(Boolean, nullable=False, default=False)
    min_selections = Column(Integer, nullable=False, default=0)
    max_selections = Column(Integer, nullable=True)
    position = Column(Integer, nullable=False, default=0)
    
    product = relationship("Product", back_populates="option_groups")
    choices = relationship(
        "OptionChoice", back_populates="group", cascade="all, delete-orphan", order_by="OptionChoice.position"
    )
    
    __table_args__ = (
        CheckConstraint("selection_type IN ('single', 'multiple', 'half_half')", name="check_selection_type_valid"),
    )


class OptionChoice(Base):
    __tablename__ = "option_choices"
    
    id = Column(String(36), primary_key=True, default=new_id)
    group_id = Column(String(36), ForeignKey("option_groups.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    price_delta = Column(Numeric(10, 2), nullable=False, default=0)  # may be negative
    position = Column(Integer, nullable=False, default=0)
    
    group = relationship("OptionGroup", back_populates="choices")
