"""
Pydantic schemas for couriers and location reports
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from delivery_service.models.courier import CourierStatus


class CourierCreate(BaseModel):
    """Schema for a merchant registering a courier"""
    merchant_id: str
    name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)
    principal_id: Optional[str] = Field(None, description="Identity of the courier's login")
    vehicle_type: Optional[str] = Field(None, max_length=32)
    license_plate: Optional[str] = Field(None, max_length=16)


class CourierUpdate(BaseModel):
    is_active: bool


class AvailabilityUpdate(BaseModel):
    is_available: bool


class CourierResponse(BaseModel):
    id: str
    merchant_id: str
    name: str
    phone: Optional[str]
    vehicle_type: Optional[str]
    is_active: bool
    is_available: bool
    dispatch_status: CourierStatus
    
    model_config = ConfigDict(from_attributes=True)


class LocationReport(BaseModel):
    """Periodic courier position ping"""
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    ts: datetime = Field(..., description="Device timestamp of the fix")


class LocationReportResult(BaseModel):
    courier_id: str
    accepted: bool


class PositionResponse(BaseModel):
    courier_id: str
    lat: float
    lon: float
    ts: datetime
