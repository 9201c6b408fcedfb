"""
Payment Service - handles the payment provider's charge webhook
"""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from delivery_service.database import transaction
from delivery_service.exceptions import DeliveryError, NotFound
from delivery_service.models.order import OrderStatus, PaymentMethod, PaymentStatus, PREPAID_METHODS
from delivery_service.repositories.event_repository import ProcessedEventRepository
from delivery_service.repositories.order_repository import OrderRepository
from delivery_service.schemas.payment import PaymentWebhook
from delivery_service.security import SYSTEM_PRINCIPAL
from delivery_service.services.notification_fanout import NotificationFanout
from delivery_service.services.order_state_machine import OrderStateMachine

logger = logging.getLogger(__name__)

PAYMENT_OUTCOMES = {
    "succeeded": PaymentStatus.PAID,
    "failed": PaymentStatus.FAILED,
    "refunded": PaymentStatus.REFUNDED,
}


class PaymentService:
    """Applies payment outcomes to orders"""
    
    def __init__(self, db: Session, fanout: NotificationFanout):
        self.db = db
        self.orders = OrderRepository(db)
        self.processed = ProcessedEventRepository(db)
        self.state_machine = OrderStateMachine(db, fanout)
    
    def process_webhook(self, webhook: PaymentWebhook) -> bool:
        """
        Process a payment event exactly once
        
        Steps:
        1. Check idempotency (skip if event_id already processed)
        2. Record payment status on the order
        3. Auto-confirm prepaid orders still pending
        
        Step 3 also runs for duplicates, so a redelivery or a retry after a
        failed confirm still moves a paid order out of pending.
        
        Returns:
            True if processed, False if it was a duplicate
        
        Raises:
            NotFound: Unknown order (nothing is marked, so the provider may redeliver)
        """
        processed = True
        # Step 1: Idempotency
        try:
            with transaction(self.db):
                if self.processed.is_processed(webhook.event_id):
                    logger.info("Payment event %s already processed, skipping", webhook.event_id)
                    processed = False
                else:
                    order = self.orders.get_by_id(webhook.order_id)
                    if order is None:
                        raise NotFound(f"Order with id={webhook.order_id} not found")
                    self.processed.mark_processed(webhook.event_id, f"payment.{webhook.status}")
                    # Step 2: Payment status, committed together with the mark
                    self.state_machine.record_payment(order, PAYMENT_OUTCOMES[webhook.status])
        except IntegrityError:
            logger.info("Payment event %s processed concurrently, skipping", webhook.event_id)
            processed = False
        
        # Step 3: Auto-confirm
        self.confirm_if_paid(webhook.order_id)
        
        if processed:
            logger.info("Payment event %s for order %s processed: %s",
                        webhook.event_id, webhook.order_id, webhook.status)
        return processed
    
    def confirm_if_paid(self, order_id: str) -> bool:
        """Confirm a paid prepaid order that is still pending; True if it moved"""
        self.db.expire_all()
        order = self.orders.get_by_id(order_id)
        if (order is None
                or order.payment_status != PaymentStatus.PAID.value
                or PaymentMethod(order.payment_method) not in PREPAID_METHODS
                or order.status != OrderStatus.PENDING.value):
            return False
        try:
            self.state_machine.advance(
                order.id, OrderStatus.CONFIRMED, SYSTEM_PRINCIPAL, expected_status=OrderStatus.PENDING
            )
        except DeliveryError as e:
            # Paid but not confirmable (e.g. coupon ran out); staff resolves it
            logger.warning("Order %s paid but not auto-confirmed: %s", order.id, e.message)
            return False
        return True
