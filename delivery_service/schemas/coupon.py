"""
Pydantic schemas for coupons
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from delivery_service.models.coupon import DiscountType


class CouponCreate(BaseModel):
    merchant_id: str
    code: str = Field(..., min_length=1, max_length=64)
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal = Field(..., gt=0, decimal_places=2)
    is_active: bool = True
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    min_order_value: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    max_uses: Optional[int] = Field(None, ge=1)
    
    @model_validator(mode="after")
    def check_window(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("percentage discount cannot exceed 100")
        if self.starts_at and self.expires_at and self.expires_at < self.starts_at:
            raise ValueError("expires_at must not be before starts_at")
        return self


class CouponResponse(BaseModel):
    id: str
    merchant_id: str
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    is_active: bool
    starts_at: Optional[datetime]
    expires_at: Optional[datetime]
    min_order_value: Optional[Decimal]
    max_uses: Optional[int]
    current_uses: int
    
    model_config = ConfigDict(from_attributes=True)


class CouponValidateRequest(BaseModel):
    code: str
    merchant_id: str
    subtotal: Decimal = Field(..., ge=0)


class CouponValidationResponse(BaseModel):
    valid: bool
    discount_amount: Decimal
    reason: Optional[str] = None
