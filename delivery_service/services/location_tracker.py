"""
Location Tracker - last known courier position
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from delivery_service.database import transaction
from delivery_service.exceptions import NotFound
from delivery_service.repositories.courier_repository import CourierRepository
from delivery_service.timeutils import as_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float
    reported_at: datetime


class LocationTracker:
    """Keeps one position per courier; no history"""
    
    def __init__(self, db: Session):
        self.db = db
        self.couriers = CourierRepository(db)
    
    def report(self, courier_id: str, latitude: float, longitude: float, reported_at: datetime) -> bool:
        """
        Record a position fix
        
        Last write wins by report timestamp: a delayed report older than the
        stored one is ignored.
        
        Returns:
            True if stored, False if superseded by a newer report
        """
        reported_at = as_utc(reported_at)
        with transaction(self.db):
            accepted = self.couriers.update_location(courier_id, latitude, longitude, reported_at)
            if not accepted and self.couriers.get_by_id(courier_id) is None:
                raise NotFound(f"Courier with id={courier_id} not found")
        if not accepted:
            logger.debug("Stale location report for courier %s at %s ignored", courier_id, reported_at)
        return accepted
    
    def get_position(self, courier_id: str) -> Optional[Position]:
        courier = self.couriers.get_by_id(courier_id)
        if courier is None:
            raise NotFound(f"Courier with id={courier_id} not found")
        if courier.latitude is None or courier.longitude is None or courier.location_updated_at is None:
            return None
        return Position(
            latitude=courier.latitude,
            longitude=courier.longitude,
            reported_at=as_utc(courier.location_updated_at),
        )
