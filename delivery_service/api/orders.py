"""
Order API endpoints
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from delivery_service.api.deps import call_with_retry, event_stream, get_fanout
from delivery_service.database import get_db
from delivery_service.schemas.order import (
    CourierAction,
    EventLogEntry,
    OrderCreate,
    OrderResponse,
    TrackingResponse,
    TransitionRequest,
)
from delivery_service.security import Principal, get_optional_principal, get_principal, require_courier_access
from delivery_service.services.dispatch_service import DispatchCoordinator
from delivery_service.services.notification_fanout import NotificationFanout, order_channel
from delivery_service.services.order_service import OrderService
from delivery_service.services.order_state_machine import OrderStateMachine

router = APIRouter(prefix="/orders", tags=["orders"])


def get_order_service(db: Session = Depends(get_db), fanout: NotificationFanout = Depends(get_fanout)) -> OrderService:
    """Dependency to get OrderService instance"""
    return OrderService(db, fanout)


def get_state_machine(db: Session = Depends(get_db), fanout: NotificationFanout = Depends(get_fanout)) -> OrderStateMachine:
    return OrderStateMachine(db, fanout)


def get_dispatcher(db: Session = Depends(get_db), fanout: NotificationFanout = Depends(get_fanout)) -> DispatchCoordinator:
    return DispatchCoordinator(db, fanout)


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED, summary="Create order")
def create_order(
    order_data: OrderCreate,
    principal: Optional[Principal] = Depends(get_optional_principal),
    service: OrderService = Depends(get_order_service)
):
    """
    Checkout
    
    Process:
    1. Price every line from the catalog (option groups and quantity)
    2. Validate the coupon code, if any, against the subtotal
    3. total = subtotal - discount + delivery_fee
    4. Save the order at 'pending'
    5. Notify the merchant (order_created)
    """
    return call_with_retry(service.create_order, order_data, principal)


@router.get("/{order_id}", response_model=OrderResponse, summary="Get order by ID")
def get_order(order_id: str, service: OrderService = Depends(get_order_service)):
    """
    Retrieve a specific order by its opaque ID
    
    - **order_id**: Order ID
    """
    return service.get_order(order_id)


@router.get("/{order_id}/events", response_model=List[EventLogEntry], summary="Order event log")
def get_order_events(order_id: str, service: OrderService = Depends(get_order_service)):
    """Every notification event of the order, in sequence"""
    return service.get_event_log(order_id)


@router.get("/{order_id}/tracking", response_model=TrackingResponse, summary="Track order")
def get_tracking(order_id: str, service: OrderService = Depends(get_order_service)):
    """Status plus the courier's last known position once a courier is on it"""
    return service.get_tracking(order_id)


@router.get("/{order_id}/stream", summary="Customer event stream (SSE)")
def stream_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
    fanout: NotificationFanout = Depends(get_fanout)
):
    service.get_order(order_id)
    subscription = fanout.hub.subscribe(order_channel(order_id))
    return StreamingResponse(event_stream(subscription), media_type="text/event-stream")


@router.post("/{order_id}/transition", response_model=OrderResponse, summary="Advance order status")
def transition_order(
    order_id: str,
    request: TransitionRequest,
    principal: Principal = Depends(get_principal),
    state_machine: OrderStateMachine = Depends(get_state_machine)
):
    """
    Move the order to the next status in the chain, or cancel it
    
    - **target_status**: Immediate successor of the current status, or cancelled
    - **expected_status**: Optional; rejected with PreconditionMismatch if stale
    """
    return call_with_retry(
        state_machine.advance, order_id, request.target_status, principal, expected_status=request.expected_status
    )


@router.post("/{order_id}/offer", response_model=OrderResponse, summary="Offer order to a courier")
def offer_order(
    order_id: str,
    action: CourierAction,
    principal: Principal = Depends(get_principal),
    dispatcher: DispatchCoordinator = Depends(get_dispatcher)
):
    return call_with_retry(dispatcher.offer, order_id, action.courier_id, principal)


@router.post("/{order_id}/accept", response_model=OrderResponse, summary="Courier accepts the offer")
def accept_offer(
    order_id: str,
    action: CourierAction,
    principal: Principal = Depends(get_principal),
    dispatcher: DispatchCoordinator = Depends(get_dispatcher)
):
    require_courier_access(principal, action.courier_id)
    return call_with_retry(dispatcher.accept, order_id, action.courier_id)


@router.post("/{order_id}/decline", response_model=OrderResponse, summary="Courier declines the offer")
def decline_offer(
    order_id: str,
    action: CourierAction,
    principal: Principal = Depends(get_principal),
    dispatcher: DispatchCoordinator = Depends(get_dispatcher)
):
    require_courier_access(principal, action.courier_id)
    return call_with_retry(dispatcher.decline, order_id, action.courier_id)


@router.post("/{order_id}/start-delivery", response_model=OrderResponse, summary="Courier picks the order up")
def start_delivery(
    order_id: str,
    action: CourierAction,
    principal: Principal = Depends(get_principal),
    dispatcher: DispatchCoordinator = Depends(get_dispatcher)
):
    require_courier_access(principal, action.courier_id)
    return call_with_retry(dispatcher.start_delivery, order_id, action.courier_id)


@router.post("/{order_id}/complete", response_model=OrderResponse, summary="Courier delivers the order")
def complete_delivery(
    order_id: str,
    action: CourierAction,
    principal: Principal = Depends(get_principal),
    dispatcher: DispatchCoordinator = Depends(get_dispatcher)
):
    require_courier_access(principal, action.courier_id)
    return call_with_retry(dispatcher.complete, order_id, action.courier_id)
