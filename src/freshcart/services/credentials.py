"""CredentialCache - OAuth2 client-credentials tokens shared through Redis.

A token is fetched from the identity provider only when none is cached.
It is stored under ``oauth2:access_token`` with a TTL of
``expires_in - safety_margin`` so it disappears before the provider would
reject it. Misses inside one process are coalesced behind a lock.
"""

import asyncio

import httpx
import structlog
from redis.asyncio import Redis

from freshcart.core.exceptions import CredentialFetchError
from freshcart.services.metrics import MetricsRegistry
from freshcart.services.resilience import call_with_retry

logger = structlog.get_logger(__name__)


class CredentialCache:
    """Hands out bearer tokens, reusing a cached one while it is valid.

    Usage:
        ```python
        credentials = CredentialCache(redis, http_client, metrics, token_url=..., ...)
        token = await credentials.get_token()
        headers = {"Authorization": f"Bearer {token}"}
        ```
    """

    TOKEN_KEY = "oauth2:access_token"
    DEFAULT_EXPIRES_IN = 3600

    def __init__(
        self,
        redis: Redis,
        http_client: httpx.AsyncClient,
        metrics: MetricsRegistry,
        *,
        token_url: str,
        client_id: str,
        client_secret: str,
        safety_margin: int = 60,
        timeout: float = 5.0,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
    ) -> None:
        self.redis = redis
        self.http_client = http_client
        self.metrics = metrics
        self.token_url = token_url
        self.client_id = client_id
        self._client_secret = client_secret
        self.safety_margin = safety_margin
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self._lock = asyncio.Lock()

    async def get_token(self) -> str:
        """Return a valid access token.

        Raises:
            CredentialFetchError: Identity provider could not issue a token
        """
        token = await self._read_cached()
        if token:
            self.metrics.record_token_cache_hit()
            return token

        async with self._lock:
            # Another coroutine may have stored a token while we waited.
            token = await self._read_cached()
            if token:
                self.metrics.record_token_cache_hit()
                return token

            self.metrics.record_token_fetch()
            return await self._fetch_and_store()

    async def invalidate(self) -> None:
        """Drop the cached token so the next call fetches a fresh one."""
        self.metrics.record_token_refresh()
        await self.redis.delete(self.TOKEN_KEY)
        logger.info("oauth_token_invalidated")

    async def _read_cached(self) -> str | None:
        try:
            return await self.redis.get(self.TOKEN_KEY)
        except Exception as e:
            logger.warning("oauth_token_cache_read_failed", error=str(e))
            return None

    async def _request_token(self) -> httpx.Response:
        response = await self.http_client.post(
            self.token_url,
            data={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self._client_secret,
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response

    async def _fetch_and_store(self) -> str:
        try:
            response = await call_with_retry(
                self._request_token,
                method="POST",
                max_retries=self.max_retries,
                base_delay=self.retry_base_delay,
                target="oauth",
            )
            payload = response.json()
        except Exception as e:
            logger.error("oauth_token_fetch_failed", token_url=self.token_url, error=str(e))
            raise CredentialFetchError(details={"reason": str(e)}) from e

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            logger.error("oauth_token_missing", token_url=self.token_url)
            raise CredentialFetchError(
                message="OAuth2 token response did not include an access_token"
            )

        expires_in = payload.get("expires_in") or self.DEFAULT_EXPIRES_IN
        try:
            ttl = int(expires_in) - self.safety_margin
        except (TypeError, ValueError) as e:
            logger.error("oauth_token_bad_expiry", expires_in=expires_in)
            raise CredentialFetchError(
                message="OAuth2 token response had a non-numeric expires_in",
                details={"reason": str(e)},
            ) from e
        if ttl > 0:
            try:
                await self.redis.set(self.TOKEN_KEY, token, ex=ttl)
            except Exception as e:
                logger.warning("oauth_token_cache_write_failed", error=str(e))
        else:
            logger.warning("oauth_token_not_cached", expires_in=expires_in)

        logger.info("oauth_token_fetched", ttl=max(ttl, 0))
        return token
