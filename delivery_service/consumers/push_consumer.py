"""
RabbitMQ Consumer turning order events into push notifications
"""
import logging
import sys

import pika
from pydantic import ValidationError

from delivery_service.config import settings
from delivery_service.logging_config import configure_logging
from delivery_service.schemas.events import NotificationEvent
from delivery_service.services.push_client import PushClient, PushGatewayError
from delivery_service.services.push_messages import build_push_messages

logger = logging.getLogger(__name__)


def handle_event(body: bytes, push_client: PushClient) -> bool:
    """
    Send the pushes for one event
    
    Returns:
        True if every push was accepted or had no live subscription
    
    Raises:
        ValidationError: Body is not a NotificationEvent
    """
    event = NotificationEvent.model_validate_json(body)
    logger.info("Received event: %s seq=%s (ID: %s)", event.event_type.value, event.sequence, event.event_id)
    
    success = True
    for message in build_push_messages(event):
        try:
            push_client.send(message)
        except PushGatewayError as e:
            logger.warning("Push to %s failed for event %s: %s", message.target, event.event_id, e)
            success = False
    return success


def make_callback(push_client: PushClient):
    def callback(ch, method, properties, body):
        try:
            success = handle_event(body, push_client)
        except ValidationError as e:
            logger.error("Invalid event payload: %s", e)
            ch.basic_nack(delivery_tag=method.delivery_tag, requeue=False)
            return
        
        if success:
            ch.basic_ack(delivery_tag=method.delivery_tag)
        else:
            # Reject and don't requeue; push is best effort
            ch.basic_nack(delivery_tag=method.delivery_tag, requeue=False)
    
    return callback


def start_consumer():
    """
    Start RabbitMQ consumer
    
    Binds the push queue to every delivery.* event and consumes with manual
    acknowledgement.
    """
    configure_logging(settings.LOG_LEVEL)
    connection = None
    try:
        logger.info("Connecting to RabbitMQ: %s", settings.RABBITMQ_URL)
        connection = pika.BlockingConnection(pika.URLParameters(settings.RABBITMQ_URL))
        channel = connection.channel()
        
        channel.exchange_declare(
            exchange=settings.RABBITMQ_EXCHANGE,
            exchange_type='topic',
            durable=True
        )
        channel.queue_declare(queue=settings.RABBITMQ_QUEUE, durable=True)
        channel.queue_bind(
            exchange=settings.RABBITMQ_EXCHANGE,
            queue=settings.RABBITMQ_QUEUE,
            routing_key=settings.RABBITMQ_ROUTING_KEY
        )
        logger.info("Queue %s bound with routing key %s", settings.RABBITMQ_QUEUE, settings.RABBITMQ_ROUTING_KEY)
        
        # A single unacked message at a time keeps pushes in publish order
        channel.basic_qos(prefetch_count=1)
        channel.basic_consume(
            queue=settings.RABBITMQ_QUEUE,
            on_message_callback=make_callback(PushClient()),
            auto_ack=False
        )
        
        logger.info("%s push consumer started", settings.SERVICE_NAME)
        channel.start_consuming()
    
    except KeyboardInterrupt:
        logger.info("Consumer stopped by user")
        if connection is not None and connection.is_open:
            connection.close()
        sys.exit(0)
    except pika.exceptions.AMQPError as e:
        logger.error("Error starting consumer: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    start_consumer()
