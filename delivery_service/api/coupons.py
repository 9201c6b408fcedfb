"""
Coupon API endpoints
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from delivery_service.api.deps import call_with_retry
from delivery_service.database import get_db
from delivery_service.schemas.coupon import (
    CouponCreate,
    CouponResponse,
    CouponValidateRequest,
    CouponValidationResponse,
)
from delivery_service.security import Principal, get_principal
from delivery_service.services.coupon_service import CouponService

router = APIRouter(prefix="/coupons", tags=["coupons"])


def get_coupon_service(db: Session = Depends(get_db)) -> CouponService:
    """Dependency to get CouponService instance"""
    return CouponService(db)


@router.post("", response_model=CouponResponse, status_code=status.HTTP_201_CREATED, summary="Create coupon")
def create_coupon(
    data: CouponCreate,
    principal: Principal = Depends(get_principal),
    service: CouponService = Depends(get_coupon_service)
):
    """
    Create a coupon for a merchant
    
    - **code**: Normalized to upper case; unique per merchant
    - **discount_type**: percentage or fixed
    """
    return call_with_retry(service.create_coupon, data, principal)


@router.post("/validate", response_model=CouponValidationResponse, summary="Preview a coupon")
def validate_coupon(request: CouponValidateRequest, service: CouponService = Depends(get_coupon_service)):
    """
    Check a code against a cart subtotal without consuming a use
    
    Returns the discount, or the first failing reason.
    """
    validation = service.validate_and_price(request.code, request.merchant_id, request.subtotal)
    return CouponValidationResponse(
        valid=validation.valid,
        discount_amount=validation.discount_amount,
        reason=validation.reason.value if validation.reason else None,
    )
