"""FastAPI dependency injection container.

Services are built once per application in the lifespan by
``build_container`` and stored on ``app.state.container``. The functions
below resolve them from the request for use with FastAPI's Depends()
pattern, so tests can pass a container of their own to ``create_app``.
"""

import time
from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass
from typing import Annotated

import httpx
from fastapi import Depends, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from freshcart.config import Settings
from freshcart.repositories.product import ProductRepository
from freshcart.services.cache import CacheAsideStore
from freshcart.services.catalog import CatalogService
from freshcart.services.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from freshcart.services.credentials import CredentialCache
from freshcart.services.idempotency import IdempotencyGuard
from freshcart.services.metrics import MetricsRegistry
from freshcart.services.rate_limiter import RateLimiter
from freshcart.services.resilience import ResilientClient
from freshcart.services.upstream import UpstreamCatalogClient
from freshcart.services.webhooks import WebhookService


# ========================================
# Service Container
# ========================================
@dataclass
class ServiceContainer:
    """Every long-lived service of one application instance."""

    settings: Settings
    redis: Redis
    http_client: httpx.AsyncClient
    metrics: MetricsRegistry
    cache: CacheAsideStore
    credentials: CredentialCache
    breaker: CircuitBreaker
    resilient: ResilientClient
    upstream: UpstreamCatalogClient
    idempotency: IdempotencyGuard
    webhooks: WebhookService
    rate_limiter: RateLimiter


def build_container(
    settings: Settings,
    redis: Redis,
    http_client: httpx.AsyncClient,
    metrics: MetricsRegistry | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> ServiceContainer:
    """Wire all services from settings and shared clients.

    Args:
        settings: Application settings
        redis: Async Redis client (decode_responses=True)
        http_client: Shared outbound HTTP client
        metrics: Registry to report into; a new one if omitted
        clock: Monotonic time source for the circuit breaker and metrics

    Returns:
        ServiceContainer ready to be stored on app.state
    """
    metrics = metrics or MetricsRegistry(clock=clock)

    breaker = CircuitBreaker(
        "upstream-api",
        CircuitBreakerConfig(
            timeout=settings.circuit_breaker_timeout,
            error_threshold_percentage=settings.circuit_breaker_error_threshold,
            reset_timeout=settings.circuit_breaker_reset_timeout,
            rolling_window_seconds=settings.circuit_breaker_rolling_window_seconds,
            volume_threshold=settings.circuit_breaker_volume_threshold,
        ),
        on_state_change=metrics.set_circuit_breaker_status,
        clock=clock,
    )
    resilient = ResilientClient(
        breaker,
        metrics,
        max_retries=settings.upstream_max_retries,
        base_delay=settings.upstream_retry_base_delay,
    )
    credentials = CredentialCache(
        redis,
        http_client,
        metrics,
        token_url=settings.oauth_token_url,
        client_id=settings.oauth_client_id,
        client_secret=settings.oauth_client_secret.get_secret_value(),
        safety_margin=settings.oauth_token_safety_margin,
        timeout=settings.upstream_timeout,
        max_retries=settings.upstream_max_retries,
        retry_base_delay=settings.upstream_retry_base_delay,
    )
    upstream = UpstreamCatalogClient(
        http_client,
        resilient,
        credentials,
        products_url=settings.upstream_products_url,
        webhook_registration_url=settings.upstream_webhook_registration_url,
        timeout=settings.upstream_timeout,
    )
    idempotency = IdempotencyGuard(
        redis, metrics, retention_seconds=settings.webhook_retention_seconds
    )

    return ServiceContainer(
        settings=settings,
        redis=redis,
        http_client=http_client,
        metrics=metrics,
        cache=CacheAsideStore(redis, metrics, ttl=settings.cache_ttl_seconds),
        credentials=credentials,
        breaker=breaker,
        resilient=resilient,
        upstream=upstream,
        idempotency=idempotency,
        webhooks=WebhookService(idempotency, metrics),
        rate_limiter=RateLimiter(
            redis,
            metrics,
            points=settings.rate_limit_points,
            duration=settings.rate_limit_duration,
            block_duration=settings.rate_limit_block_duration,
        ),
    )


# ========================================
# Container Dependencies
# ========================================
def get_container(request: Request) -> ServiceContainer:
    """Get the service container created during lifespan."""
    return request.app.state.container


ContainerDep = Annotated[ServiceContainer, Depends(get_container)]


# ========================================
# Database Dependencies
# ========================================
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session.

    Yields a database session that automatically handles
    commit on success and rollback on exception.

    Yields:
        AsyncSession: Database session
    """

    from freshcart.core.database import get_async_session

    async for session in get_async_session():
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ========================================
# Service Dependencies
# ========================================
def get_metrics(container: ContainerDep) -> MetricsRegistry:
    return container.metrics


def get_cache_store(container: ContainerDep) -> CacheAsideStore:
    return container.cache


def get_webhook_service(container: ContainerDep) -> WebhookService:
    return container.webhooks


def get_upstream_client(container: ContainerDep) -> UpstreamCatalogClient:
    return container.upstream


def get_rate_limiter(container: ContainerDep) -> RateLimiter:
    return container.rate_limiter


def get_catalog_service(
    container: ContainerDep,
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> CatalogService:
    """Get the catalogue service bound to this request's session."""
    settings = container.settings
    return CatalogService(
        container.cache,
        ProductRepository(session),
        default_limit=settings.pagination_default_limit,
        max_limit=settings.pagination_max_limit,
    )
