"""Upstream data API client.

Every call carries a bearer token from CredentialCache and runs through
ResilientClient (circuit breaker + retries). A 401 means the cached token is
no longer accepted, so it is invalidated before the error is surfaced; the
next call fetches a fresh one.
"""

from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from freshcart.core.exceptions import UpstreamError
from freshcart.services.credentials import CredentialCache
from freshcart.services.resilience import ResilientClient

logger = structlog.get_logger(__name__)

DEFAULT_WEBHOOK_EVENTS = ("order.created", "order.updated")


# -----------------------------------------------------------------------------
# DTOs
# -----------------------------------------------------------------------------


@dataclass
class ExternalProduct:
    """Product record as reported by the upstream data API."""

    id: str
    name: str
    price: float

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "price": self.price}

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> "ExternalProduct":
        """Map one upstream record, tolerating missing optional fields."""
        return cls(
            id=str(item["id"]),
            name=str(item.get("name") or item.get("title") or ""),
            price=float(item.get("price") or 0.0),
        )


def _parse_products(response: httpx.Response, limit: int) -> list[ExternalProduct]:
    try:
        payload = response.json()
    except ValueError as e:
        raise UpstreamError(message="Upstream product list was not valid JSON") from e
    if not isinstance(payload, list):
        raise UpstreamError(message="Upstream product list was not a JSON array")
    try:
        return [ExternalProduct.from_api(item) for item in payload[:limit]]
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise UpstreamError(message="Malformed upstream product record") from e


# -----------------------------------------------------------------------------
# Client
# -----------------------------------------------------------------------------


class UpstreamCatalogClient:
    """Authenticated, resilient access to the upstream data API.

    Usage:
        ```python
        client = UpstreamCatalogClient(http_client, resilient, credentials, products_url=...)
        products = await client.fetch_products()
        ```
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        resilient: ResilientClient,
        credentials: CredentialCache,
        *,
        products_url: str,
        webhook_registration_url: str,
        timeout: float = 5.0,
        max_products: int = 10,
    ) -> None:
        self.http_client = http_client
        self.resilient = resilient
        self.credentials = credentials
        self.products_url = products_url
        self.webhook_registration_url = webhook_registration_url
        self.timeout = timeout
        self.max_products = max_products

    async def _auth_headers(self) -> dict[str, str]:
        token = await self.credentials.get_token()
        return {"Authorization": f"Bearer {token}"}

    async def fetch_products(self) -> list[ExternalProduct]:
        """Fetch the upstream product list.

        Raises:
            CredentialFetchError: No token could be obtained
            CircuitOpenError: Upstream is known to be failing
            UpstreamError: Upstream failed after retries
            UpstreamTimeoutError: Upstream did not answer in time
        """
        headers = await self._auth_headers()

        async def request() -> list[ExternalProduct]:
            response = await self.http_client.get(
                self.products_url, headers=headers, timeout=self.timeout
            )
            response.raise_for_status()
            # Mapped inside the breaker so malformed data counts as a failure
            return _parse_products(response, self.max_products)

        products = await self._execute(request, method="GET")
        logger.info("upstream_products_fetched", count=len(products))
        return products

    async def register_webhook(
        self,
        callback_url: str,
        events: list[str] | None = None,
    ) -> dict[str, Any]:
        """Register our callback URL for upstream events.

        Args:
            callback_url: Public URL of POST /api/webhook/callback
            events: Event types to subscribe to

        Returns:
            The registration that was sent
        """
        headers = await self._auth_headers()
        body = {
            "callback_url": callback_url,
            "events": list(events or DEFAULT_WEBHOOK_EVENTS),
        }

        async def request() -> None:
            response = await self.http_client.post(
                self.webhook_registration_url,
                json=body,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()

        await self._execute(request, method="POST")
        logger.info("webhook_registered", callback_url=callback_url, events=body["events"])
        return body

    async def _execute(self, request: Any, method: str) -> Any:
        try:
            return await self.resilient.execute(request, method=method)
        except UpstreamError as e:
            if e.upstream_status == 401:
                logger.warning("upstream_token_rejected")
                try:
                    await self.credentials.invalidate()
                except Exception as redis_error:
                    logger.error("oauth_token_invalidate_failed", error=str(redis_error))
            raise
