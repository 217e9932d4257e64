"""Inbound webhook endpoint.

Events are acknowledged with 200 whether they are processed now or were
already processed, so senders stop redelivering either way.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, status

from freshcart.core.logging import get_logger
from freshcart.dependencies import get_webhook_service
from freshcart.schemas.common import ErrorResponse
from freshcart.schemas.webhooks import WebhookAck
from freshcart.services.idempotency import WebhookEvent
from freshcart.services.webhooks import WebhookOutcome, WebhookService

logger = get_logger(__name__)

router = APIRouter()

_MESSAGES = {
    WebhookOutcome.PROCESSED: "Webhook received and processed",
    WebhookOutcome.DUPLICATE: "Event already processed",
}


@router.post(
    "/callback",
    response_model=WebhookAck,
    status_code=status.HTTP_200_OK,
    summary="Receive webhook event",
    responses={
        200: {"description": "Event processed or recognised as a duplicate"},
        400: {"model": ErrorResponse, "description": "Missing event_id or event_type"},
        503: {"model": ErrorResponse, "description": "Deduplication store unavailable"},
    },
)
async def receive_webhook(
    payload: Annotated[Any, Body()],
    webhooks: Annotated[WebhookService, Depends(get_webhook_service)],
) -> WebhookAck:
    """Accept one event delivery."""
    event = WebhookEvent.from_payload(payload)
    outcome = await webhooks.handle(event)

    logger.info(
        "webhook_received",
        event_id=event.event_id,
        event_type=event.event_type,
        outcome=outcome.value,
    )
    return WebhookAck(message=_MESSAGES[outcome], outcome=outcome.value)
