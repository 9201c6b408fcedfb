"""
Order Repository - Data Access Layer
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import asc, desc, update
from sqlalchemy.orm import Session, selectinload

from delivery_service.models.order import Order, OrderStatus

# Statuses in which an assigned courier is bound to the order
COURIER_ACTIVE_STATUSES = (
    OrderStatus.AWAITING_DRIVER.value,
    OrderStatus.READY.value,
    OrderStatus.OUT_FOR_DELIVERY.value,
)


class OrderRepository:
    """Repository for Order reads and optimistic-lock writes"""
    
    def __init__(self, db: Session):
        self.db = db
    
    def get_by_id(self, order_id: str) -> Optional[Order]:
        """Get order by ID"""
        return self.db.query(Order).options(
            selectinload(Order.items)
        ).filter(Order.id == order_id).first()
    
    def get_by_merchant(self, merchant_id: str, status: Optional[str] = None,
                        skip: int = 0, limit: int = 100) -> List[Order]:
        """Get merchant orders, newest first"""
        query = self.db.query(Order).filter(Order.merchant_id == merchant_id)
        if status:
            query = query.filter(Order.status == status)
        return query.order_by(desc(Order.created_at)).offset(skip).limit(limit).all()
    
    def get_active_for_courier(self, courier_id: str) -> List[Order]:
        """Orders the courier is bound to, oldest first"""
        return self.db.query(Order).filter(
            Order.assigned_courier_id == courier_id,
            Order.status.in_(COURIER_ACTIVE_STATUSES)
        ).order_by(asc(Order.created_at)).all()
    
    def count_active_for_courier(self, courier_id: str, exclude_order_id: Optional[str] = None) -> int:
        query = self.db.query(Order).filter(
            Order.assigned_courier_id == courier_id,
            Order.status.in_(COURIER_ACTIVE_STATUSES)
        )
        if exclude_order_id:
            query = query.filter(Order.id != exclude_order_id)
        return query.count()
    
    def get_stale_offers(self, offered_before: datetime) -> List[Order]:
        """Orders waiting on a courier's answer since before the cutoff"""
        return self.db.query(Order).filter(
            Order.status == OrderStatus.AWAITING_DRIVER.value,
            Order.offered_at < offered_before
        ).order_by(asc(Order.offered_at)).all()
    
    def create(self, order_data: dict, items: list) -> Order:
        """
        Create new order with its line items
        
        Args:
            order_data: Dictionary with order fields
            items: OrderLineItem instances
        
        Returns:
            Created order (flushed, not committed)
        """
        order = Order(**order_data)
        order.items = items
        self.db.add(order)
        self.db.flush()
        return order
    
    def compare_and_set(self, order_id: str, seen_version: int, values: dict) -> bool:
        """
        Write values only if nobody else wrote the order since it was read
        
        Bumps the version on success.
        
        Returns:
            True if applied, False if the version moved on (lost race)
        """
        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.version == seen_version)
            .values(version=Order.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
    
    def count(self, merchant_id: Optional[str] = None, status: Optional[str] = None) -> int:
        """Get total count of orders, optionally for one merchant and status"""
        query = self.db.query(Order)
        if merchant_id:
            query = query.filter(Order.merchant_id == merchant_id)
        if status:
            query = query.filter(Order.status == status)
        return query.count()
