"""
Operational endpoints for super-admins
"""
from fastapi import APIRouter, Depends

from delivery_service.api.deps import get_fanout
from delivery_service.database import SessionLocal
from delivery_service.exceptions import Forbidden
from delivery_service.security import Principal, get_principal
from delivery_service.services.notification_fanout import NotificationFanout
from delivery_service.services.reconciliation import reconcile_stale_offers

router = APIRouter(prefix="/admin", tags=["admin"])


def get_session_factory():
    return SessionLocal


@router.post("/reconcile-offers", summary="Withdraw unanswered courier offers")
def reconcile_offers(
    principal: Principal = Depends(get_principal),
    fanout: NotificationFanout = Depends(get_fanout),
    session_factory=Depends(get_session_factory)
):
    if not principal.is_super_admin:
        raise Forbidden("Super-admin only")
    expired = reconcile_stale_offers(session_factory, fanout)
    return {"expired": len(expired), "order_ids": expired}
