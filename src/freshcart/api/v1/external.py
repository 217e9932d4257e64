"""Endpoints that call the upstream data API.

Both run behind the circuit breaker and retry policy; an open circuit
answers 503 immediately without contacting upstream.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from freshcart.core.logging import get_logger
from freshcart.dependencies import get_upstream_client
from freshcart.schemas.common import ErrorResponse
from freshcart.schemas.products import ExternalProductsResponse
from freshcart.schemas.webhooks import WebhookRegistrationRequest, WebhookRegistrationResponse
from freshcart.services.upstream import UpstreamCatalogClient

logger = get_logger(__name__)

router = APIRouter()

_UPSTREAM_ERRORS = {
    502: {"model": ErrorResponse, "description": "Upstream or identity provider error"},
    503: {"model": ErrorResponse, "description": "Circuit open"},
    504: {"model": ErrorResponse, "description": "Upstream timeout"},
}


@router.get(
    "/products",
    response_model=ExternalProductsResponse,
    status_code=status.HTTP_200_OK,
    summary="Fetch upstream products",
    responses={200: {"description": "Upstream products"}, **_UPSTREAM_ERRORS},
)
async def fetch_external_products(
    upstream: Annotated[UpstreamCatalogClient, Depends(get_upstream_client)],
) -> ExternalProductsResponse:
    """Fetch products from the upstream data API."""
    products = await upstream.fetch_products()
    return ExternalProductsResponse(
        data=[p.to_dict() for p in products],
        count=len(products),
    )


@router.post(
    "/webhooks/register",
    response_model=WebhookRegistrationResponse,
    status_code=status.HTTP_200_OK,
    summary="Register webhook callback upstream",
    responses={200: {"description": "Callback registered"}, **_UPSTREAM_ERRORS},
)
async def register_webhook(
    request: WebhookRegistrationRequest,
    upstream: Annotated[UpstreamCatalogClient, Depends(get_upstream_client)],
) -> WebhookRegistrationResponse:
    """Register our callback URL with the upstream event source."""
    registration = await upstream.register_webhook(request.callback_url, request.events)
    return WebhookRegistrationResponse(
        message="Webhook registered",
        callback_url=registration["callback_url"],
        events=registration["events"],
    )
