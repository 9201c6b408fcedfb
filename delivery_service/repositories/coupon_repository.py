"""
Coupon Repository - Data Access Layer
"""
from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from delivery_service.models.coupon import Coupon


class CouponRepository:
    """Repository for Coupon lookups and atomic redemption"""
    
    def __init__(self, db: Session):
        self.db = db
    
    def get_by_id(self, coupon_id: str) -> Optional[Coupon]:
        return self.db.get(Coupon, coupon_id)
    
    def get_by_code(self, merchant_id: str, code: str) -> Optional[Coupon]:
        """Get coupon by merchant and normalized code"""
        return self.db.query(Coupon).filter(
            Coupon.merchant_id == merchant_id,
            Coupon.code == code
        ).first()
    
    def create(self, coupon_data: dict) -> Coupon:
        coupon = Coupon(**coupon_data)
        self.db.add(coupon)
        self.db.flush()
        return coupon
    
    def increment_uses(self, coupon_id: str) -> bool:
        """
        Atomically bump current_uses unless the cap is reached
        
        Returns:
            True if a use was recorded, False if the coupon is exhausted
        """
        result = self.db.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon_id,
                or_(Coupon.max_uses.is_(None), Coupon.current_uses < Coupon.max_uses)
            )
            .values(current_uses=Coupon.current_uses + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
