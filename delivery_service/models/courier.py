"""
SQLAlchemy Courier model
"""
import enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Float, String
from sqlalchemy.sql import func

from delivery_service.database import Base
from delivery_service.models.order import new_id


class CourierStatus(str, enum.Enum):
    IDLE = "idle"
    PENDING_ACCEPTANCE = "pending_acceptance"
    IN_DELIVERY = "in_delivery"


class Courier(Base):
    """Courier database model"""
    
    __tablename__ = "couriers"
    
    id = Column(String(36), primary_key=True, default=new_id)
    merchant_id = Column(String(36), nullable=False, index=True)
    principal_id = Column(String(64), nullable=True, index=True)  # push target
    name = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=True)
    vehicle_type = Column(String(32), nullable=True)
    license_plate = Column(String(16), nullable=True)
    
    is_active = Column(Boolean, nullable=False, default=True)
    is_available = Column(Boolean, nullable=False, default=True)
    dispatch_status = Column(String(32), nullable=False, default=CourierStatus.IDLE.value, index=True)
    
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    location_updated_at = Column(DateTime(timezone=True), nullable=True)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    __table_args__ = (
        CheckConstraint(
            "dispatch_status IN ('idle', 'pending_acceptance', 'in_delivery')",
            name="check_dispatch_status_valid",
        ),
    )
    
    def __repr__(self):
        return f"<Courier(id={self.id}, name='{self.name}', dispatch_status='{self.dispatch_status}')>"
