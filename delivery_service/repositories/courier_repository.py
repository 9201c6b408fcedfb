"""
Courier Repository - Data Access Layer
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from delivery_service.models.courier import Courier, CourierStatus


class CourierRepository:
    """Repository for Courier reads and conditional dispatch writes"""
    
    def __init__(self, db: Session):
        self.db = db
    
    def get_by_id(self, courier_id: str) -> Optional[Courier]:
        """Get courier by ID"""
        return self.db.get(Courier, courier_id)
    
    def get_by_merchant(self, merchant_id: str) -> List[Courier]:
        return self.db.query(Courier).filter(
            Courier.merchant_id == merchant_id
        ).order_by(Courier.name).all()
    
    def create(self, courier_data: dict) -> Courier:
        courier = Courier(**courier_data)
        self.db.add(courier)
        self.db.flush()
        return courier
    
    def _conditional_update(self, courier_id: str, conditions: list, values: dict) -> bool:
        result = self.db.execute(
            update(Courier)
            .where(Courier.id == courier_id, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
    
    def reserve_for_offer(self, courier_id: str, merchant_id: str) -> bool:
        """idle/active/available -> pending_acceptance; False if the courier is not free"""
        return self._conditional_update(
            courier_id,
            [
                Courier.merchant_id == merchant_id,
                Courier.is_active.is_(True),
                Courier.is_available.is_(True),
                Courier.dispatch_status == CourierStatus.IDLE.value,
            ],
            {"dispatch_status": CourierStatus.PENDING_ACCEPTANCE.value, "is_available": False},
        )
    
    def transition(self, courier_id: str, expected: CourierStatus, new: CourierStatus) -> bool:
        """Move dispatch_status from expected to new; False if it changed meanwhile"""
        values = {"dispatch_status": new.value}
        if new == CourierStatus.IDLE:
            values["is_available"] = True
        return self._conditional_update(
            courier_id, [Courier.dispatch_status == expected.value], values
        )
    
    def release(self, courier_id: str) -> bool:
        """Return a busy courier to idle/available"""
        return self._conditional_update(
            courier_id,
            [Courier.dispatch_status != CourierStatus.IDLE.value],
            {"dispatch_status": CourierStatus.IDLE.value, "is_available": True},
        )
    
    def set_availability(self, courier_id: str, is_available: bool) -> bool:
        """Toggle availability; only an idle courier may change it"""
        return self._conditional_update(
            courier_id,
            [Courier.dispatch_status == CourierStatus.IDLE.value],
            {"is_available": is_available},
        )
    
    def set_active(self, courier_id: str, is_active: bool) -> bool:
        """Activate/deactivate; only an idle courier may change it"""
        return self._conditional_update(
            courier_id,
            [Courier.dispatch_status == CourierStatus.IDLE.value],
            {"is_active": is_active},
        )
    
    def update_location(self, courier_id: str, latitude: float, longitude: float, reported_at: datetime) -> bool:
        """
        Store a position unless a newer one is already recorded
        
        Returns:
            True if the report was applied, False if it was older than the stored one
        """
        return self._conditional_update(
            courier_id,
            [or_(Courier.location_updated_at.is_(None), Courier.location_updated_at < reported_at)],
            {"latitude": latitude, "longitude": longitude, "location_updated_at": reported_at},
        )
