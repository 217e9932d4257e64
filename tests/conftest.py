"""Pytest configuration and fixtures for FreshCart tests.

This module provides reusable fixtures for:
- Settings overrides
- An in-memory Redis double with a controllable clock
- Test database session (in-memory SQLite)
- A fully wired service container and async test client
"""

import fnmatch
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta
from typing import Any

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from freshcart.config import Settings
from freshcart.dependencies import ServiceContainer, build_container, get_db_session
from freshcart.main import create_app
from freshcart.models import Base, Product

# =============================================================================
# Clock & Redis Doubles
# =============================================================================


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePipeline:
    """Queues commands and runs them in order on execute()."""

    def __init__(self, redis: "FakeRedis") -> None:
        self._redis = redis
        self._commands: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self._commands.clear()

    def _queue(self, name: str, *args: Any, **kwargs: Any) -> "FakePipeline":
        self._commands.append((name, args, kwargs))
        return self

    def set(self, *args: Any, **kwargs: Any) -> "FakePipeline":
        return self._queue("set", *args, **kwargs)

    def incr(self, *args: Any, **kwargs: Any) -> "FakePipeline":
        return self._queue("incr", *args, **kwargs)

    def pttl(self, *args: Any, **kwargs: Any) -> "FakePipeline":
        return self._queue("pttl", *args, **kwargs)

    def expire(self, *args: Any, **kwargs: Any) -> "FakePipeline":
        return self._queue("expire", *args, **kwargs)

    async def execute(self) -> list[Any]:
        results = []
        for name, args, kwargs in self._commands:
            results.append(await getattr(self._redis, name)(*args, **kwargs))
        self._commands.clear()
        return results


class FakeRedis:
    """In-memory stand-in for redis.asyncio.Redis with decode_responses=True.

    Only the commands FreshCart uses are implemented. Set ``fail = True`` to
    make every command raise a connection error.
    """

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.fail = False
        self.data: dict[str, str] = {}
        self.expires_at: dict[str, float] = {}
        self.calls: list[str] = []

    def _check(self, command: str) -> None:
        self.calls.append(command)
        if self.fail:
            raise RedisConnectionError("Connection refused")

    def _purge(self, key: str) -> None:
        deadline = self.expires_at.get(key)
        if deadline is not None and self.clock() >= deadline:
            self.data.pop(key, None)
            self.expires_at.pop(key, None)

    async def ping(self) -> bool:
        self._check("ping")
        return True

    async def get(self, key: str) -> str | None:
        self._check("get")
        self._purge(key)
        return self.data.get(key)

    async def set(
        self,
        key: str,
        value: Any,
        ex: int | None = None,
        nx: bool = False,
    ) -> bool | None:
        self._check("set")
        self._purge(key)
        if nx and key in self.data:
            return None
        self.data[key] = str(value)
        if ex is not None:
            self.expires_at[key] = self.clock() + ex
        else:
            self.expires_at.pop(key, None)
        return True

    async def delete(self, *keys: str) -> int:
        self._check("delete")
        removed = 0
        for key in keys:
            self._purge(key)
            if self.data.pop(key, None) is not None:
                removed += 1
            self.expires_at.pop(key, None)
        return removed

    async def exists(self, key: str) -> int:
        self._check("exists")
        self._purge(key)
        return int(key in self.data)

    async def incr(self, key: str) -> int:
        self._check("incr")
        self._purge(key)
        value = int(self.data.get(key, "0")) + 1
        self.data[key] = str(value)
        return value

    async def expire(self, key: str, seconds: int) -> bool:
        self._check("expire")
        self._purge(key)
        if key not in self.data:
            return False
        self.expires_at[key] = self.clock() + seconds
        return True

    async def pttl(self, key: str) -> int:
        self._check("pttl")
        self._purge(key)
        if key not in self.data:
            return -2
        deadline = self.expires_at.get(key)
        if deadline is None:
            return -1
        return int((deadline - self.clock()) * 1000)

    async def ttl(self, key: str) -> int:
        pttl = await self.pttl(key)
        return pttl if pttl < 0 else pttl // 1000

    async def scan_iter(self, match: str = "*") -> AsyncGenerator[str, None]:
        self._check("scan")
        for key in list(self.data):
            self._purge(key)
            if key in self.data and fnmatch.fnmatchcase(key, match):
                yield key

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    async def aclose(self) -> None:
        return None


@pytest.fixture
def clock() -> FakeClock:
    """A clock tests can advance to expire keys or cool down breakers."""
    return FakeClock()


@pytest.fixture
def fake_redis(clock: FakeClock) -> FakeRedis:
    """In-memory Redis sharing the test clock."""
    return FakeRedis(clock)


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Create test-specific settings.

    Retries do not sleep and the database is an in-memory SQLite file.
    """
    return Settings(
        app_env="development",  # type: ignore[arg-type]
        debug=False,
        log_level="DEBUG",  # type: ignore[arg-type]
        log_format="console",  # type: ignore[arg-type]
        database_url="sqlite+aiosqlite:///:memory:",
        redis_url="redis://localhost:6379/15",
        upstream_retry_base_delay=0.0,
        upstream_products_url="https://upstream.test/products",
        upstream_webhook_registration_url="https://upstream.test/webhooks",
        oauth_token_url="https://idp.test/oauth/token",
    )


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Session bound to the in-memory database.

    Usage:
        async def test_products(db_session: AsyncSession):
            db_session.add(Product(name="Apples", price=1.5, category="produce"))
            await db_session.flush()
    """
    factory = async_sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False)
    async with factory() as session:
        yield session


@pytest.fixture
def make_product() -> Callable[..., Product]:
    """Factory for products with explicit, distinct timestamps."""
    base_time = datetime(2025, 1, 1, 12, 0, 0)
    counter = {"n": 0}

    def _make(
        name: str | None = None,
        price: float = 10.0,
        category: str = "produce",
        description: str | None = None,
        created_at: datetime | None = None,
    ) -> Product:
        counter["n"] += 1
        n = counter["n"]
        stamp = created_at or base_time + timedelta(minutes=n)
        return Product(
            name=name or f"Product {n:03d}",
            description=description,
            price=price,
            category=category,
            created_at=stamp,
            updated_at=stamp,
        )

    return _make


# =============================================================================
# Application Fixtures
# =============================================================================


def _default_upstream_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(404, json={"detail": "no handler configured"})


@pytest.fixture
def upstream_routes() -> dict[str, Callable[[httpx.Request], httpx.Response]]:
    """Per-URL handlers for the mocked outbound HTTP client.

    Usage:
        upstream_routes["https://upstream.test/products"] = lambda req: httpx.Response(200, json=[])
    """
    return {}


@pytest.fixture
async def http_client(
    upstream_routes: dict[str, Callable[[httpx.Request], httpx.Response]],
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Outbound client whose requests are answered by ``upstream_routes``."""

    def dispatch(request: httpx.Request) -> httpx.Response:
        url = str(request.url.copy_with(query=None))
        handler = upstream_routes.get(url, _default_upstream_handler)
        return handler(request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(dispatch)) as client:
        yield client


@pytest.fixture
def container(
    test_settings: Settings,
    fake_redis: FakeRedis,
    http_client: httpx.AsyncClient,
    clock: FakeClock,
) -> ServiceContainer:
    """All services wired against the Redis double and mocked HTTP."""
    built = build_container(
        test_settings,
        fake_redis,  # type: ignore[arg-type]
        http_client,
        clock=clock,
    )
    return built


@pytest.fixture
def app(
    test_settings: Settings,
    container: ServiceContainer,
    db_session: AsyncSession,
) -> FastAPI:
    """Create a test FastAPI application bound to the test container and DB."""
    application = create_app(settings=test_settings, container=container)

    async def override_db_session() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    application.dependency_overrides[get_db_session] = override_db_session
    return application


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing.

    This client makes requests to the test app without starting a server.

    Usage:
        async def test_endpoint(async_client: AsyncClient):
            response = await async_client.get("/health/live")
            assert response.status_code == 200
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
