"""
Merchant dashboard endpoints
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from delivery_service.api.couriers import get_courier_service
from delivery_service.api.deps import event_stream, get_fanout
from delivery_service.api.orders import get_order_service
from delivery_service.models.order import OrderStatus
from delivery_service.schemas.courier import CourierResponse
from delivery_service.schemas.order import OrderListResponse
from delivery_service.security import Principal, get_principal, require_merchant_access
from delivery_service.services.courier_service import CourierService
from delivery_service.services.notification_fanout import NotificationFanout, merchant_channel
from delivery_service.services.order_service import OrderService

router = APIRouter(prefix="/merchants", tags=["merchants"])


@router.get("/{merchant_id}/orders", response_model=OrderListResponse, summary="Merchant orders")
def get_merchant_orders(
    merchant_id: str,
    status: Optional[OrderStatus] = Query(None, description="Only orders in this status"),
    skip: int = Query(0, ge=0, description="Number of orders to skip"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of orders to return"),
    principal: Principal = Depends(get_principal),
    service: OrderService = Depends(get_order_service)
):
    """
    Orders of a merchant, newest first
    
    - **status**: Optional status filter
    - **skip** / **limit**: Pagination
    """
    orders = service.get_merchant_orders(merchant_id, principal, status=status, skip=skip, limit=limit)
    total = service.count_merchant_orders(merchant_id, status)
    return OrderListResponse(orders=orders, total=total)


@router.get("/{merchant_id}/events", summary="Merchant dashboard stream (SSE)")
def stream_merchant(
    merchant_id: str,
    principal: Principal = Depends(get_principal),
    fanout: NotificationFanout = Depends(get_fanout)
):
    require_merchant_access(principal, merchant_id)
    subscription = fanout.hub.subscribe(merchant_channel(merchant_id))
    return StreamingResponse(event_stream(subscription), media_type="text/event-stream")


@router.get("/{merchant_id}/couriers", response_model=List[CourierResponse], summary="Merchant couriers")
def get_merchant_couriers(
    merchant_id: str,
    principal: Principal = Depends(get_principal),
    service: CourierService = Depends(get_courier_service)
):
    """Couriers of a merchant with their dispatch status"""
    return service.list_couriers(merchant_id, principal)
