"""CatalogService - cached product reads.

Combines CacheAsideStore with the pagination engine: list pages and single
products are served from Redis when present, otherwise computed from the
database and cached for the configured TTL.
"""

from typing import Any
from uuid import UUID

import structlog

from freshcart.core.exceptions import ProductNotFoundError
from freshcart.repositories.product import ProductRepository
from freshcart.services.cache import CacheAsideStore
from freshcart.services.pagination import (
    CursorPaginationEngine,
    PageQuery,
    PageResult,
    serialize_product,
)

logger = structlog.get_logger(__name__)

PAGE_NAMESPACE = "products:page"


class CatalogService:
    """Read-side facade over the product catalogue.

    Usage:
        ```python
        service = CatalogService(cache, ProductRepository(session))
        page = await service.list_products(PageQuery(limit=10))
        ```
    """

    def __init__(
        self,
        cache: CacheAsideStore,
        repository: ProductRepository,
        default_limit: int = 20,
        max_limit: int = 100,
    ) -> None:
        self.cache = cache
        self.repository = repository
        self.default_limit = default_limit
        self.max_limit = max_limit
        self.engine = CursorPaginationEngine(repository, default_limit, max_limit)

    async def list_products(self, query: PageQuery) -> PageResult:
        """Return one page of products, cache first.

        The cache key covers every parameter after normalization, so
        ``limit=None`` and ``limit=<default>`` share an entry.
        """
        query = query.normalized(self.default_limit, self.max_limit)
        cache_key = CacheAsideStore.fingerprint(PAGE_NAMESPACE, query.cache_params())

        async def compute() -> dict[str, Any]:
            page = await self.engine.paginate(query)
            return page.to_dict()

        cached = await self.cache.get_or_compute(cache_key, compute)
        return PageResult.from_dict(cached)

    async def get_product(self, product_id: str) -> dict[str, Any]:
        """Return one product, cache first.

        Raises:
            ProductNotFoundError: Unknown or malformed id
        """
        try:
            parsed_id = UUID(product_id)
        except ValueError as e:
            raise ProductNotFoundError(product_id=product_id) from e

        async def compute() -> dict[str, Any] | None:
            product = await self.repository.get_by_id(parsed_id)
            return serialize_product(product) if product else None

        product = await self.cache.get_or_compute(
            CacheAsideStore.item_key(str(parsed_id)), compute
        )
        if product is None:
            logger.info("product_not_found", product_id=product_id)
            raise ProductNotFoundError(product_id=product_id)
        return product
