"""Services package for FreshCart.

This module exports the caching, pagination and resilience services.
"""

from freshcart.services.cache import CacheAsideStore
from freshcart.services.catalog import CatalogService
from freshcart.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from freshcart.services.credentials import CredentialCache
from freshcart.services.idempotency import IdempotencyGuard, WebhookEvent
from freshcart.services.metrics import MetricsRegistry, RingBuffer
from freshcart.services.pagination import (
    CursorPaginationEngine,
    PageQuery,
    PageResult,
    ProductFilters,
    SortField,
    SortOrder,
)
from freshcart.services.rate_limiter import RateLimitDecision, RateLimiter
from freshcart.services.resilience import ResilientClient, is_retryable
from freshcart.services.upstream import ExternalProduct, UpstreamCatalogClient
from freshcart.services.webhooks import WebhookOutcome, WebhookService

__all__ = [
    # Cache & catalogue
    "CacheAsideStore",
    "CatalogService",
    "CursorPaginationEngine",
    "PageQuery",
    "PageResult",
    "ProductFilters",
    "SortField",
    "SortOrder",
    # Resilience
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "ResilientClient",
    "is_retryable",
    # Upstream
    "CredentialCache",
    "ExternalProduct",
    "UpstreamCatalogClient",
    # Webhooks
    "IdempotencyGuard",
    "WebhookEvent",
    "WebhookOutcome",
    "WebhookService",
    # Admission & metrics
    "MetricsRegistry",
    "RateLimitDecision",
    "RateLimiter",
    "RingBuffer",
]
