"""
HTTP Client for the push notification gateway with retry logic
"""
import logging

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from delivery_service.config import settings
from delivery_service.services.push_messages import PushMessage

logger = logging.getLogger(__name__)


class PushGatewayError(Exception):
    """Base exception for push gateway errors"""
    pass


class PushGatewayUnavailableError(PushGatewayError):
    """Push gateway is unreachable"""
    pass


class PushClient:
    """Client for delivering push notifications"""
    
    def __init__(self, mode: str = None, base_url: str = None, timeout: float = None):
        self.mode = mode or settings.PUSH_SERVICE
        self.base_url = base_url or settings.PUSH_GATEWAY_URL
        self.timeout = timeout or settings.PUSH_TIMEOUT_SECONDS
    
    def send(self, message: PushMessage) -> bool:
        """
        Deliver one push notification
        
        Args:
            message: Target principal, title, body, tag and data
        
        Returns:
            True if the gateway accepted it
        
        Raises:
            PushGatewayError: Gateway rejected the message
            PushGatewayUnavailableError: Gateway unreachable after retries
        """
        if self.mode == "console":
            logger.info("PUSH to=%s title=%r body=%r tag=%s", message.target, message.title, message.body, message.tag)
            return True
        if self.mode == "http":
            return self._post(message)
        logger.error("Unknown push service: %s", self.mode)
        return False
    
    @retry(
        stop=stop_after_attempt(settings.MAX_RETRIES),
        wait=wait_exponential(multiplier=settings.RETRY_DELAY, min=1, max=10),
        retry=retry_if_exception_type(PushGatewayUnavailableError),
        reraise=True
    )
    def _post(self, message: PushMessage) -> bool:
        body = {
            "target": message.target,
            "payload": {
                "title": message.title,
                "body": message.body,
                "tag": message.tag,
                "data": message.data,
            },
        }
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.base_url, json=body)
        except httpx.TransportError as e:
            logger.warning("Push gateway unreachable: %s", e)
            raise PushGatewayUnavailableError(f"Push gateway unavailable: {e}")
        
        if response.status_code in (200, 201, 202):
            return True
        if response.status_code in (404, 410):
            # Subscription gone; nothing to retry
            logger.info("No live push subscription for %s", message.target)
            return False
        raise PushGatewayError(f"Unexpected status code: {response.status_code}")
