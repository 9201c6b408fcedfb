"""
Coupon Validator - discount preview and atomic redemption
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from delivery_service.database import transaction
from delivery_service.exceptions import (
    CouponBelowMinimum, CouponExpired, CouponInactive, CouponNotFound, CouponNotYetStarted,
    CouponUsageLimitReached, DuplicateCoupon,
)
from delivery_service.models.coupon import Coupon, DiscountType
from delivery_service.repositories.coupon_repository import CouponRepository
from delivery_service.schemas.coupon import CouponCreate
from delivery_service.security import Principal, require_merchant_access
from delivery_service.services.pricing import to_money
from delivery_service.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)


class CouponRejection(str, enum.Enum):
    NOT_FOUND = "NotFound"
    INACTIVE = "Inactive"
    EXPIRED = "Expired"
    NOT_YET_STARTED = "NotYetStarted"
    BELOW_MINIMUM_ORDER = "BelowMinimumOrder"
    USAGE_LIMIT_REACHED = "UsageLimitReached"


REJECTION_ERRORS = {
    CouponRejection.NOT_FOUND: CouponNotFound,
    CouponRejection.INACTIVE: CouponInactive,
    CouponRejection.EXPIRED: CouponExpired,
    CouponRejection.NOT_YET_STARTED: CouponNotYetStarted,
    CouponRejection.BELOW_MINIMUM_ORDER: CouponBelowMinimum,
    CouponRejection.USAGE_LIMIT_REACHED: CouponUsageLimitReached,
}


@dataclass
class CouponValidation:
    valid: bool
    discount_amount: Decimal
    reason: Optional[CouponRejection] = None
    coupon: Optional[Coupon] = None
    
    def raise_for_reason(self) -> None:
        if not self.valid:
            raise REJECTION_ERRORS[self.reason](f"Coupon rejected: {self.reason.value}")


def normalize_code(code: str) -> str:
    return code.strip().upper()


def compute_discount(discount_type: str, discount_value, subtotal: Decimal) -> Decimal:
    """Discount for a subtotal; never more than the subtotal itself"""
    subtotal = Decimal(subtotal)
    value = Decimal(discount_value)
    if discount_type == DiscountType.PERCENTAGE:
        amount = subtotal * value / Decimal(100)
    else:
        amount = value
    return to_money(min(amount, subtotal))


class CouponService:
    """Service layer for coupon validation and redemption"""
    
    def __init__(self, db: Session):
        self.db = db
        self.repository = CouponRepository(db)
    
    def validate_and_price(self, code: str, merchant_id: str, subtotal,
                           now: Optional[datetime] = None) -> CouponValidation:
        """
        Check a code against a subtotal without consuming a use
        
        Checks run in order and the first failure is reported: existence,
        active flag, activity window, minimum order value, usage cap.
        """
        now = as_utc(now) or utcnow()
        subtotal = Decimal(subtotal)
        coupon = self.repository.get_by_code(merchant_id, normalize_code(code))
        
        def reject(reason: CouponRejection) -> CouponValidation:
            return CouponValidation(valid=False, discount_amount=Decimal("0.00"), reason=reason, coupon=coupon)
        
        if coupon is None:
            return reject(CouponRejection.NOT_FOUND)
        if not coupon.is_active:
            return reject(CouponRejection.INACTIVE)
        if coupon.expires_at is not None and now > as_utc(coupon.expires_at):
            return reject(CouponRejection.EXPIRED)
        if coupon.starts_at is not None and now < as_utc(coupon.starts_at):
            return reject(CouponRejection.NOT_YET_STARTED)
        if coupon.min_order_value is not None and subtotal < coupon.min_order_value:
            return reject(CouponRejection.BELOW_MINIMUM_ORDER)
        if coupon.max_uses is not None and coupon.current_uses >= coupon.max_uses:
            return reject(CouponRejection.USAGE_LIMIT_REACHED)
        
        return CouponValidation(
            valid=True,
            discount_amount=compute_discount(coupon.discount_type, coupon.discount_value, subtotal),
            coupon=coupon,
        )
    
    def redeem(self, coupon_id: str) -> None:
        """
        Consume one use; call only from a finalized order confirmation
        
        Runs in the caller's transaction.
        
        Raises:
            CouponNotFound: Unknown coupon
            CouponUsageLimitReached: Cap reached by a concurrent redemption
        """
        if self.repository.increment_uses(coupon_id):
            logger.info("Coupon %s redeemed", coupon_id)
            return
        if self.repository.get_by_id(coupon_id) is None:
            raise CouponNotFound(f"Coupon {coupon_id} not found")
        raise CouponUsageLimitReached(f"Coupon {coupon_id} has no uses left")
    
    def create_coupon(self, data: CouponCreate, principal: Principal) -> Coupon:
        require_merchant_access(principal, data.merchant_id)
        values = data.model_dump()
        values["code"] = normalize_code(data.code)
        values["discount_type"] = data.discount_type.value
        values["starts_at"] = as_utc(data.starts_at)
        values["expires_at"] = as_utc(data.expires_at)
        try:
            with transaction(self.db):
                coupon = self.repository.create(values)
        except IntegrityError:
            raise DuplicateCoupon(f"Coupon code {values['code']} already exists for this merchant")
        logger.info("Coupon %s created for merchant %s", coupon.code, coupon.merchant_id)
        return coupon
