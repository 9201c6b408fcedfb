"""
Courier Service - registration and self-service flags
"""
import logging
from typing import List

from sqlalchemy.orm import Session

from delivery_service.database import transaction
from delivery_service.exceptions import NotFound, PreconditionMismatch
from delivery_service.models.courier import Courier
from delivery_service.repositories.courier_repository import CourierRepository
from delivery_service.schemas.courier import CourierCreate
from delivery_service.security import Principal, require_courier_access, require_merchant_access

logger = logging.getLogger(__name__)


class CourierService:
    """Service layer for courier management"""
    
    def __init__(self, db: Session):
        self.db = db
        self.repository = CourierRepository(db)
    
    def get_courier(self, courier_id: str) -> Courier:
        courier = self.repository.get_by_id(courier_id)
        if courier is None:
            raise NotFound(f"Courier with id={courier_id} not found")
        return courier
    
    def list_couriers(self, merchant_id: str, principal: Principal) -> List[Courier]:
        require_merchant_access(principal, merchant_id)
        return self.repository.get_by_merchant(merchant_id)
    
    def create_courier(self, data: CourierCreate, principal: Principal) -> Courier:
        require_merchant_access(principal, data.merchant_id)
        with transaction(self.db):
            courier = self.repository.create(data.model_dump())
        logger.info("Courier %s registered for merchant %s", courier.id, courier.merchant_id)
        return courier
    
    def set_active(self, courier_id: str, is_active: bool, principal: Principal) -> Courier:
        """Merchant (de)activates a courier; refused mid-delivery"""
        courier = self.get_courier(courier_id)
        require_merchant_access(principal, courier.merchant_id)
        with transaction(self.db):
            if not self.repository.set_active(courier_id, is_active):
                raise PreconditionMismatch(f"Courier {courier_id} is busy with a delivery")
        self.db.refresh(courier)
        logger.info("Courier %s active=%s", courier_id, is_active)
        return courier
    
    def set_availability(self, courier_id: str, is_available: bool, principal: Principal) -> Courier:
        """Courier toggles whether it takes offers; refused mid-delivery"""
        courier = self.get_courier(courier_id)
        require_courier_access(principal, courier_id)
        with transaction(self.db):
            if not self.repository.set_availability(courier_id, is_available):
                raise PreconditionMismatch(f"Courier {courier_id} is busy with a delivery")
        self.db.refresh(courier)
        logger.info("Courier %s available=%s", courier_id, is_available)
        return courier
