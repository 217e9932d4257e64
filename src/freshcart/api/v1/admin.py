"""Administrative endpoints for operating the caching and resilience layer."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, status

from freshcart.core.logging import get_logger
from freshcart.dependencies import ContainerDep, get_cache_store, get_rate_limiter
from freshcart.schemas.common import MessageResponse
from freshcart.services.cache import CacheAsideStore
from freshcart.services.rate_limiter import RateLimiter

logger = get_logger(__name__)

router = APIRouter()


@router.delete(
    "/cache",
    status_code=status.HTTP_200_OK,
    summary="Invalidate cached product data",
)
async def invalidate_cache(
    cache: Annotated[CacheAsideStore, Depends(get_cache_store)],
    pattern: Annotated[str, Query(min_length=1)] = "products:*",
) -> dict[str, Any]:
    """Delete every cache key matching ``pattern``."""
    deleted = await cache.invalidate(pattern)
    logger.info("admin_cache_invalidated", pattern=pattern, deleted=deleted)
    return {"status": "success", "pattern": pattern, "deleted": deleted}


@router.delete(
    "/rate-limits/{client_key}",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Reset a client's rate-limit budget",
)
async def reset_rate_limit(
    client_key: str,
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
) -> MessageResponse:
    existed = await limiter.reset(client_key)
    message = "Rate limit reset" if existed else "No active rate limit for client"
    return MessageResponse(message=message)


@router.get(
    "/circuit-breaker",
    status_code=status.HTTP_200_OK,
    summary="Circuit breaker status",
)
async def circuit_breaker_status(container: ContainerDep) -> dict[str, Any]:
    return {"status": "success", "data": container.breaker.get_status()}


@router.post(
    "/circuit-breaker/reset",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Force the circuit breaker closed",
)
async def reset_circuit_breaker(container: ContainerDep) -> MessageResponse:
    container.breaker.reset()
    return MessageResponse(message="Circuit breaker reset")


@router.post(
    "/token/invalidate",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Drop the cached OAuth2 access token",
)
async def invalidate_token(container: ContainerDep) -> MessageResponse:
    await container.credentials.invalidate()
    return MessageResponse(message="Access token invalidated")
