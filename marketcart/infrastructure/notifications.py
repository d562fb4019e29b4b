"""Notification publishers for order events.

Publishing is fail-open: a publisher that cannot deliver logs the
problem and returns, so an order operation never fails because a
notification could not be sent.
"""

import hashlib
import hmac
import json
from abc import ABC, abstractmethod
from collections.abc import Iterable

import httpx
import structlog

from marketcart.domain.base import DomainEvent

logger = structlog.get_logger()

# Cart events stay internal; only order events leave the process.
PUBLISHED_EVENT_PREFIX = "order."


class NotificationPublisher(ABC):
    """Receives domain events after the aggregate that raised them is saved."""

    @abstractmethod
    async def publish(self, event: DomainEvent) -> bool:
        """Publish one event.

        Args:
            event: Event to publish.

        Returns:
            True if the event was delivered.
        """

    async def publish_all(self, events: Iterable[DomainEvent]) -> int:
        """Publish the order events among ``events``, never raising.

        Args:
            events: Events collected from saved aggregates.

        Returns:
            Number of events delivered.
        """
        delivered = 0
        for event in events:
            if not event.event_type.startswith(PUBLISHED_EVENT_PREFIX):
                continue
            try:
                if await self.publish(event):
                    delivered += 1
            except Exception as e:
                logger.error(
                    "Notification publish failed",
                    event_type=event.event_type,
                    event_id=str(event.event_id),
                    error=str(e),
                )
        return delivered

    async def close(self) -> None:
        """Release any held resources."""


class LoggingNotificationPublisher(NotificationPublisher):
    """Writes events to the structured log. Used when no webhook is configured."""

    async def publish(self, event: DomainEvent) -> bool:
        logger.info(
            "Order event",
            event_type=event.event_type,
            event_id=str(event.event_id),
            aggregate_id=event.aggregate_id,
        )
        return True


class WebhookNotificationPublisher(NotificationPublisher):
    """POSTs HMAC-signed event envelopes to a webhook URL.

    The body is the JSON envelope from :meth:`DomainEvent.to_dict`. The
    ``X-MarketCart-Signature`` header carries ``sha256=<hex digest>`` of
    the body, keyed with the shared secret.
    """

    def __init__(
        self,
        webhook_url: str,
        webhook_secret: str,
        timeout_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize webhook publisher.

        Args:
            webhook_url: URL to deliver events to.
            webhook_secret: Secret for HMAC signing.
            timeout_seconds: Per-request timeout.
            client: Optional preconfigured client, mainly for tests.
        """
        self.webhook_url = webhook_url
        self.webhook_secret = webhook_secret
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    def sign_payload(self, payload: str) -> str:
        """Generate HMAC signature for payload.

        Args:
            payload: JSON payload string.

        Returns:
            HMAC-SHA256 signature.
        """
        signature = hmac.new(
            self.webhook_secret.encode(),
            payload.encode(),
            hashlib.sha256,
        ).hexdigest()
        return f"sha256={signature}"

    async def publish(self, event: DomainEvent) -> bool:
        payload_json = json.dumps(event.to_dict(), separators=(",", ":"), default=str)
        headers = {
            "Content-Type": "application/json",
            "X-MarketCart-Signature": self.sign_payload(payload_json),
            "X-Event-Id": str(event.event_id),
            "X-Event-Type": event.event_type,
        }

        try:
            response = await self._client.post(
                self.webhook_url,
                content=payload_json,
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.error(
                "Webhook delivery error",
                event_type=event.event_type,
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

        if response.is_success:
            logger.info(
                "Webhook delivered successfully",
                event_type=event.event_type,
                event_id=str(event.event_id),
                status_code=response.status_code,
            )
            return True

        logger.warning(
            "Webhook delivery failed",
            event_type=event.event_type,
            event_id=str(event.event_id),
            status_code=response.status_code,
            response_body=response.text[:200],
        )
        return False

    async def close(self) -> None:
        await self._client.aclose()
