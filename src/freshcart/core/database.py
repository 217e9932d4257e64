"""Process-wide async engine and session factory.

``init_db`` runs in the application lifespan and ``close_db`` on shutdown;
request handlers get sessions through ``dependencies.get_db_session``.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import make_url, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from freshcart.config import Settings
from freshcart.core.logging import get_logger

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _engine_options(settings: Settings) -> dict[str, Any]:
    if make_url(settings.database_url).get_backend_name() == "sqlite":
        # One shared connection keeps an in-memory database alive
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    return {
        "pool_size": settings.database_pool_min,
        "max_overflow": settings.database_pool_max - settings.database_pool_min,
        "pool_pre_ping": True,
    }


async def init_db(settings: Settings) -> None:
    """Create the engine and session factory; optionally create tables."""
    global _engine, _session_factory

    url = make_url(settings.database_url)
    logger.info("database_init", url=url.render_as_string(hide_password=True))

    _engine = create_async_engine(url, echo=settings.debug, **_engine_options(settings))
    _session_factory = async_sessionmaker(
        bind=_engine, expire_on_commit=False, autoflush=False
    )

    if settings.database_auto_create:
        from freshcart.models import Base

        async with _engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_tables_ensured")


async def close_db() -> None:
    """Dispose of the engine's pool."""
    global _engine, _session_factory

    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("database_closed")


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session from the process-wide factory.

    Raises:
        RuntimeError: init_db() has not run
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    async with _session_factory() as session:
        yield session


async def check_db_connection() -> bool:
    """Run ``SELECT 1``; False if the database is unreachable or not initialized."""
    if _engine is None:
        return False
    try:
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        return False
    return True
