"""
RabbitMQ Event Publisher
"""
import logging

import pika

from delivery_service.config import settings
from delivery_service.schemas.events import NotificationEvent

logger = logging.getLogger(__name__)


class EventPublisher:
    """Publisher for sending order events to RabbitMQ"""
    
    def __init__(self, rabbitmq_url: str = None, exchange: str = None):
        self.rabbitmq_url = rabbitmq_url or settings.RABBITMQ_URL
        self.exchange = exchange or settings.RABBITMQ_EXCHANGE
    
    def publish_event(self, event: NotificationEvent) -> bool:
        """
        Publish a committed order event to the topic exchange
        
        Args:
            event: Event to publish; routed as delivery.<event_type>
        
        Returns:
            True if the broker confirmed it, False otherwise
        """
        try:
            connection = pika.BlockingConnection(pika.URLParameters(self.rabbitmq_url))
            try:
                channel = connection.channel()
                channel.exchange_declare(
                    exchange=self.exchange,
                    exchange_type='topic',
                    durable=True
                )
                
                # Enable publisher confirms
                channel.confirm_delivery()
                
                channel.basic_publish(
                    exchange=self.exchange,
                    routing_key=event.routing_key,
                    body=event.model_dump_json(),
                    properties=pika.BasicProperties(
                        delivery_mode=2,  # Persistent message
                        content_type='application/json',
                        correlation_id=event.event_id
                    ),
                    mandatory=True
                )
            finally:
                connection.close()
            
            logger.info("Event published: %s seq=%s order=%s (ID: %s)",
                        event.event_type.value, event.sequence, event.order_id, event.event_id)
            return True
        
        except pika.exceptions.UnroutableError:
            logger.warning("Event %s could not be routed to any queue", event.event_id)
            return False
        except pika.exceptions.AMQPError as e:
            logger.error("Error publishing event %s: %s", event.event_id, e)
            return False
