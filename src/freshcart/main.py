"""FastAPI application factory for FreshCart.

This module creates and configures the FastAPI application with:
- Lifespan management (database, Redis, outbound HTTP client, services)
- Middleware (request ID + logging + request metrics, rate limiting)
- Exception handlers
- API routers
"""

import time
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

from freshcart.config import Settings, get_settings
from freshcart.core.exceptions import (
    FreshCartError,
    RateLimitExceededError,
    ValidationError,
)
from freshcart.core.logging import (
    clear_correlation_id,
    configure_logging,
    get_logger,
    set_correlation_id,
)
from freshcart.dependencies import ServiceContainer, build_container
from freshcart.schemas.common import HealthCheckResponse

# Initialize logger for this module
logger = get_logger(__name__)

# Probes must answer even when a client has spent its budget
RATE_LIMIT_EXEMPT_PATHS = frozenset({"/health", "/health/live", "/health/ready"})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan events.

    Handles initialization and cleanup of:
    - Logging configuration
    - Database connection pool
    - Redis connection and outbound HTTP client
    - The service container (unless one was injected)

    Args:
        app: The FastAPI application instance

    Yields:
        None: Control back to the application
    """
    from freshcart.core.database import close_db, init_db

    settings: Settings = app.state.settings

    # ========================================
    # Startup
    # ========================================
    configure_logging(settings)
    startup_logger = get_logger(__name__)

    await init_db(settings)

    owns_container = app.state.container is None
    if owns_container:
        redis = Redis.from_url(settings.redis_url, decode_responses=True)
        http_client = httpx.AsyncClient(timeout=settings.upstream_timeout)
        app.state.container = build_container(settings, redis, http_client)

    startup_logger.info(
        "Application starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.app_env.value,
        debug=settings.debug,
    )

    yield

    # ========================================
    # Shutdown
    # ========================================
    if owns_container:
        container: ServiceContainer = app.state.container
        await container.http_client.aclose()
        await container.redis.aclose()

    await close_db()

    startup_logger.info("Application shutting down", app_name=settings.app_name)


def create_app(
    settings: Settings | None = None,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings override for testing
        container: Prebuilt services; built in the lifespan when omitted

    Returns:
        FastAPI: Configured application instance
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Product catalogue with Redis caching and cursor pagination, "
            "idempotent webhooks, and resilient upstream integrations."
        ),
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = container

    configure_middleware(app, settings)
    configure_exception_handlers(app)
    configure_routes(app)

    return app


def configure_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure application middleware.

    Registration order matters: the logging middleware is added last so it
    wraps everything, including rate-limit rejections.

    Args:
        app: The FastAPI application instance
        settings: Application settings
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next: Any) -> Any:
        """Reject clients that have spent their request budget."""
        if request.url.path in RATE_LIMIT_EXEMPT_PATHS:
            return await call_next(request)

        container: ServiceContainer = request.app.state.container
        client_key = request.client.host if request.client else "unknown"
        decision = await container.rate_limiter.try_acquire(client_key)
        if not decision.allowed:
            exc = RateLimitExceededError(retry_after=decision.retry_after)
            return _error_response(request, exc)

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        return response

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next: Any) -> Any:
        """Log requests with correlation ID and feed request metrics."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id
        set_correlation_id(request_id)

        request_logger = get_logger("freshcart.request")
        metrics = request.app.state.container.metrics
        metrics.record_request()
        start_time = time.perf_counter()

        request_logger.info(
            "Request started",
            method=request.method,
            path=request.url.path,
            query=str(request.query_params) if request.query_params else None,
        )

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            if response.status_code == status.HTTP_429_TOO_MANY_REQUESTS:
                pass  # counted as rate_limited by the limiter
            elif response.status_code >= 400:
                metrics.record_failure()
            else:
                metrics.record_success(duration_ms)

            request_logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            metrics.record_failure()
            request_logger.error(
                "Request failed",
                method=request.method,
                path=request.url.path,
                duration_ms=round(duration_ms, 2),
                error=str(exc),
            )
            raise

        finally:
            clear_correlation_id()


def _error_response(request: Request, exc: FreshCartError) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    headers = None
    if isinstance(exc, RateLimitExceededError) and exc.retry_after is not None:
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(request_id=request_id),
        headers=headers,
    )


def configure_exception_handlers(app: FastAPI) -> None:
    """Configure global exception handlers.

    Args:
        app: The FastAPI application instance
    """
    exception_logger = get_logger("freshcart.exceptions")

    @app.exception_handler(FreshCartError)
    async def freshcart_exception_handler(
        request: Request, exc: FreshCartError
    ) -> JSONResponse:
        """Handle FreshCart exceptions with structured error response."""
        if exc.status_code >= 500:
            exception_logger.error(
                "Application error",
                error_code=exc.code,
                error_message=exc.message,
                status_code=exc.status_code,
                path=request.url.path,
            )
        else:
            exception_logger.warning(
                "Client error",
                error_code=exc.code,
                error_message=exc.message,
                status_code=exc.status_code,
                path=request.url.path,
            )

        return _error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Report malformed query parameters and bodies as 400s."""
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(part) for part in first.get("loc", ())[1:]) or None
        error = ValidationError(
            message=first.get("msg", "Invalid request"),
            field=field,
            details={"errors": len(errors)},
        )
        exception_logger.warning(
            "Client error",
            error_code=error.code,
            error_message=error.message,
            status_code=error.status_code,
            path=request.url.path,
        )
        return _error_response(request, error)

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions with a consistent error response."""
        request_id = getattr(request.state, "request_id", None)

        exception_logger.exception(
            "Unhandled exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "INTERNAL_SERVER_ERROR",
                    "message": "An unexpected error occurred",
                    "request_id": request_id,
                }
            },
        )


def configure_routes(app: FastAPI) -> None:
    """Configure application routes.

    Args:
        app: The FastAPI application instance
    """

    @app.get(
        "/health",
        tags=["Health"],
        summary="Health check",
    )
    async def health() -> dict[str, str]:
        return {"status": "healthy", "timestamp": datetime.now(UTC).isoformat()}

    @app.get(
        "/health/live",
        tags=["Health"],
        summary="Liveness probe",
        description="Returns OK if the service is running",
    )
    async def liveness() -> dict[str, str]:
        """Liveness probe for container orchestration."""
        return {"status": "ok"}

    @app.get(
        "/health/ready",
        tags=["Health"],
        response_model=HealthCheckResponse,
        summary="Readiness probe",
        description="Returns OK if the service is ready to accept requests",
    )
    async def readiness(request: Request) -> HealthCheckResponse:
        """Readiness probe checking dependent services."""
        from freshcart.core.database import check_db_connection

        db_ok = await check_db_connection()

        container: ServiceContainer = request.app.state.container
        try:
            redis_ok = bool(await container.redis.ping())
        except Exception as e:
            logger.error("Redis health check failed", error=str(e))
            redis_ok = False

        overall_status = "ok" if (db_ok and redis_ok) else "error"

        return HealthCheckResponse(
            status=overall_status,
            checks={
                "database": "ok" if db_ok else "error",
                "redis": "ok" if redis_ok else "error",
            },
        )

    @app.get(
        "/",
        tags=["Root"],
        summary="API root",
        description="Returns API information",
    )
    async def root(request: Request) -> dict[str, str]:
        """API root endpoint with service information."""
        settings: Settings = request.app.state.settings
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
            "health": "/health/live",
            "products": "/api/products",
        }

    from freshcart.api.v1.metrics import router as metrics_router
    from freshcart.api.v1.router import router as api_router

    app.include_router(api_router, prefix="/api")
    app.include_router(metrics_router, prefix="/metrics", tags=["Metrics"])


# Create the application instance
app = create_app()


def cli() -> None:
    """CLI entry point for running the application."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "freshcart.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.value.lower(),
    )


if __name__ == "__main__":
    cli()
