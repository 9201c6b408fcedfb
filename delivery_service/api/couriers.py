"""
Courier API endpoints
"""
from typing import List

from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from delivery_service.api.deps import call_with_retry, event_stream, get_fanout
from delivery_service.api.orders import get_order_service
from delivery_service.database import get_db
from delivery_service.exceptions import NotFound
from delivery_service.schemas.courier import (
    AvailabilityUpdate,
    CourierCreate,
    CourierResponse,
    CourierUpdate,
    LocationReport,
    LocationReportResult,
    PositionResponse,
)
from delivery_service.schemas.order import OrderResponse
from delivery_service.security import Principal, get_principal, require_courier_access
from delivery_service.services.courier_service import CourierService
from delivery_service.services.location_tracker import LocationTracker
from delivery_service.services.notification_fanout import NotificationFanout, courier_channel
from delivery_service.services.order_service import OrderService

router = APIRouter(prefix="/couriers", tags=["couriers"])


def get_courier_service(db: Session = Depends(get_db)) -> CourierService:
    """Dependency to get CourierService instance"""
    return CourierService(db)


def get_location_tracker(db: Session = Depends(get_db)) -> LocationTracker:
    return LocationTracker(db)


@router.post("", response_model=CourierResponse, status_code=status.HTTP_201_CREATED, summary="Register courier")
def create_courier(
    data: CourierCreate,
    principal: Principal = Depends(get_principal),
    service: CourierService = Depends(get_courier_service)
):
    return service.create_courier(data, principal)


@router.patch("/{courier_id}", response_model=CourierResponse, summary="Activate or deactivate courier")
def update_courier(
    courier_id: str,
    data: CourierUpdate,
    principal: Principal = Depends(get_principal),
    service: CourierService = Depends(get_courier_service)
):
    """Only possible while the courier is idle"""
    return call_with_retry(service.set_active, courier_id, data.is_active, principal)


@router.post("/{courier_id}/availability", response_model=CourierResponse, summary="Toggle availability")
def set_availability(
    courier_id: str,
    data: AvailabilityUpdate,
    principal: Principal = Depends(get_principal),
    service: CourierService = Depends(get_courier_service)
):
    return call_with_retry(service.set_availability, courier_id, data.is_available, principal)


@router.post("/{courier_id}/location", response_model=LocationReportResult, summary="Report position")
def report_location(
    courier_id: str,
    report: LocationReport,
    principal: Principal = Depends(get_principal),
    tracker: LocationTracker = Depends(get_location_tracker)
):
    """
    Store the courier's position
    
    A report older than the stored one is ignored (accepted=false).
    """
    require_courier_access(principal, courier_id)
    accepted = call_with_retry(tracker.report, courier_id, report.lat, report.lon, report.ts)
    return LocationReportResult(courier_id=courier_id, accepted=accepted)


@router.get("/{courier_id}/location", response_model=PositionResponse, summary="Last known position")
def get_location(courier_id: str, tracker: LocationTracker = Depends(get_location_tracker)):
    position = tracker.get_position(courier_id)
    if position is None:
        raise NotFound(f"No position reported for courier {courier_id}")
    return PositionResponse(
        courier_id=courier_id,
        lat=position.latitude,
        lon=position.longitude,
        ts=position.reported_at,
    )


@router.get("/{courier_id}/orders", response_model=List[OrderResponse], summary="Active deliveries")
def get_courier_orders(
    courier_id: str,
    principal: Principal = Depends(get_principal),
    service: OrderService = Depends(get_order_service)
):
    """Orders the courier is bound to, oldest first"""
    return service.get_courier_orders(courier_id, principal)


@router.get("/{courier_id}/events", summary="Courier app stream (SSE)")
def stream_courier(
    courier_id: str,
    principal: Principal = Depends(get_principal),
    fanout: NotificationFanout = Depends(get_fanout)
):
    require_courier_access(principal, courier_id)
    subscription = fanout.hub.subscribe(courier_channel(courier_id))
    return StreamingResponse(event_stream(subscription), media_type="text/event-stream")
