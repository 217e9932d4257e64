"""WebhookService - dedup then dispatch inbound events by type."""

from collections.abc import Awaitable, Callable
from enum import Enum

import structlog

from freshcart.core.logging import log_context
from freshcart.services.idempotency import IdempotencyGuard, WebhookEvent
from freshcart.services.metrics import MetricsRegistry

logger = structlog.get_logger(__name__)

EventHandler = Callable[[WebhookEvent], Awaitable[None]]


class WebhookOutcome(str, Enum):
    """What happened to one delivery."""

    PROCESSED = "processed"
    DUPLICATE = "duplicate"


async def log_event(event: WebhookEvent) -> None:
    """Default handler: record the event in the log."""
    logger.info("webhook_event_processed", data=event.data)


class WebhookService:
    """Accepts inbound events exactly once per retention window.

    Handlers are registered per event type; unknown types go to the
    default handler.
    """

    def __init__(
        self,
        guard: IdempotencyGuard,
        metrics: MetricsRegistry,
        default_handler: EventHandler = log_event,
    ) -> None:
        self.guard = guard
        self.metrics = metrics
        self.default_handler = default_handler
        self._handlers: dict[str, EventHandler] = {}

    def register(self, event_type: str, handler: EventHandler) -> None:
        self._handlers[event_type] = handler

    async def handle(self, event: WebhookEvent) -> WebhookOutcome:
        """Process an event unless its id was seen before.

        Raises:
            InvalidWebhookPayloadError: Blank event id or type
            IdempotencyStoreUnavailableError: Dedup state unavailable
        """
        self.metrics.record_webhook_received()

        if not await self.guard.should_process(event):
            return WebhookOutcome.DUPLICATE

        handler = self._handlers.get(event.event_type, self.default_handler)
        with log_context(event_id=event.event_id, event_type=event.event_type):
            await handler(event)

        self.metrics.record_webhook_processed()
        return WebhookOutcome.PROCESSED
