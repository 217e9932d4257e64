"""IdempotencyGuard - at-most-once processing of inbound webhook events.

Senders redeliver events, so each event id is reserved in Redis with a
single ``SET key value NX EX ttl``. The first writer wins; any later
delivery of the same id within the retention window is a duplicate.

Unlike the product cache this guard fails closed: if Redis cannot be
reached the event is refused with IdempotencyStoreUnavailableError and the
sender is expected to redeliver later.

The reservation happens before the event's handler runs and is not rolled
back if the handler fails.
"""

import json
from dataclasses import dataclass, field
from typing import Any

import structlog
from redis.asyncio import Redis

from freshcart.core.exceptions import (
    IdempotencyStoreUnavailableError,
    InvalidWebhookPayloadError,
)
from freshcart.services.metrics import MetricsRegistry

logger = structlog.get_logger(__name__)


@dataclass
class WebhookEvent:
    """An inbound event; ``data`` is opaque to the guard."""

    event_id: str
    event_type: str
    timestamp: str | None = None
    data: Any = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "timestamp": self.timestamp,
            "data": self.data,
        }

    @classmethod
    def from_payload(cls, payload: Any) -> "WebhookEvent":
        """Build an event from a decoded JSON body.

        Missing ids or types are not rejected here; ``validate`` does that.
        """
        if not isinstance(payload, dict):
            raise InvalidWebhookPayloadError("Webhook payload must be a JSON object")
        timestamp = payload.get("timestamp")
        return cls(
            event_id=str(payload.get("event_id") or ""),
            event_type=str(payload.get("event_type") or ""),
            timestamp=str(timestamp) if timestamp is not None else None,
            data=payload.get("data"),
        )

    def validate(self) -> None:
        """Raises InvalidWebhookPayloadError when the id or type is blank."""
        if not self.event_id.strip():
            raise InvalidWebhookPayloadError(
                "Invalid webhook payload: event_id is required", field="event_id"
            )
        if not self.event_type.strip():
            raise InvalidWebhookPayloadError(
                "Invalid webhook payload: event_type is required", field="event_type"
            )


class IdempotencyGuard:
    """Reserves event ids in Redis.

    Usage:
        ```python
        guard = IdempotencyGuard(redis, metrics, retention_seconds=86400)
        if await guard.should_process(event):
            await handle(event)
        ```
    """

    KEY_PREFIX = "webhook:event"

    def __init__(
        self,
        redis: Redis,
        metrics: MetricsRegistry,
        retention_seconds: int = 86400,
    ) -> None:
        self.redis = redis
        self.metrics = metrics
        self.retention_seconds = retention_seconds

    def key_for(self, event_id: str) -> str:
        return f"{self.KEY_PREFIX}:{event_id}"

    async def should_process(self, event: WebhookEvent) -> bool:
        """Reserve the event id.

        Returns:
            True for the first delivery, False for a duplicate

        Raises:
            InvalidWebhookPayloadError: Blank event id or type
            IdempotencyStoreUnavailableError: Redis failed
        """
        event.validate()
        key = self.key_for(event.event_id)
        try:
            reserved = await self.redis.set(
                key,
                json.dumps(event.to_dict(), default=str),
                nx=True,
                ex=self.retention_seconds,
            )
        except Exception as e:
            logger.error("idempotency_store_failed", event_id=event.event_id, error=str(e))
            raise IdempotencyStoreUnavailableError(
                details={"event_id": event.event_id}
            ) from e

        if not reserved:
            self.metrics.record_webhook_duplicate()
            logger.info(
                "webhook_duplicate",
                event_id=event.event_id,
                event_type=event.event_type,
            )
            return False
        return True
