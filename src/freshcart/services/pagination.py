"""Cursor pagination over the product table.

A page is requested with an optional cursor (the id of the last product the
client saw), a page size, a sort key and direction, and optional filters.

Pages are cut with a keyset predicate on ``(sort key, id)``: the cursor's
own sort-key value is looked up and the next page starts strictly after the
``(value, id)`` pair in the requested direction. Ordering always ends with
``id`` so ties on the sort key have a stable order.

Weak consistency under concurrent writes is accepted: a row inserted before
the cursor position is not seen by clients already paging past it.
"""

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, or_
from sqlalchemy.sql.elements import ColumnElement

from freshcart.core.exceptions import InvalidCursorError, ValidationError
from freshcart.models.product import Product
from freshcart.repositories.product import ProductRepository
from freshcart.schemas.products import ProductOut

logger = structlog.get_logger(__name__)

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


class SortField(str, Enum):
    """Columns a product page can be ordered by."""

    PRICE = "price"
    CREATED_AT = "createdAt"
    NAME = "name"


class SortOrder(str, Enum):
    """Sort direction."""

    ASC = "asc"
    DESC = "desc"


SORT_COLUMNS = {
    SortField.PRICE: Product.price,
    SortField.CREATED_AT: Product.created_at,
    SortField.NAME: Product.name,
}


# -----------------------------------------------------------------------------
# Query / Result DTOs
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ProductFilters:
    """Optional narrowing of the product set."""

    category: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    search: str | None = None


@dataclass(frozen=True)
class PageQuery:
    """A request for one page of products."""

    cursor: str | None = None
    limit: int | None = None
    sort_by: SortField = SortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC
    filters: ProductFilters = field(default_factory=ProductFilters)

    def normalized(
        self, default_limit: int = DEFAULT_LIMIT, max_limit: int = MAX_LIMIT
    ) -> "PageQuery":
        """Apply the default page size and clamp it to ``max_limit``.

        A missing or zero limit means the default.

        Raises:
            ValidationError: Negative limit
        """
        if self.limit is not None and self.limit < 0:
            raise ValidationError("limit must be a positive integer", field="limit")
        return replace(self, limit=min(self.limit or default_limit, max_limit))

    def cache_params(self) -> dict[str, Any]:
        """Every parameter that changes the page, for cache fingerprinting."""
        return {
            "cursor": self.cursor,
            "limit": self.limit,
            "sort_by": self.sort_by.value,
            "sort_order": self.sort_order.value,
            "filters": asdict(self.filters),
        }


@dataclass
class PageResult:
    """One page of serialized products.

    ``next_cursor`` is set exactly when ``has_more`` is true.
    """

    data: list[dict[str, Any]]
    next_cursor: str | None = None
    has_more: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict for caching."""
        return {
            "data": self.data,
            "nextCursor": self.next_cursor,
            "hasMore": self.has_more,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PageResult":
        """Create from cached dict."""
        return cls(
            data=data.get("data", []),
            next_cursor=data.get("nextCursor"),
            has_more=data.get("hasMore", False),
        )


def serialize_product(product: Product) -> dict[str, Any]:
    return ProductOut.model_validate(product).to_cache_dict()


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


# -----------------------------------------------------------------------------
# Engine
# -----------------------------------------------------------------------------


class CursorPaginationEngine:
    """Builds and runs keyset-paginated product queries.

    Usage:
        ```python
        engine = CursorPaginationEngine(ProductRepository(session))
        page = await engine.paginate(PageQuery(limit=10, sort_by=SortField.PRICE))
        ```
    """

    def __init__(
        self,
        repository: ProductRepository,
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
    ) -> None:
        self.repository = repository
        self.default_limit = default_limit
        self.max_limit = max_limit

    async def paginate(self, query: PageQuery) -> PageResult:
        """Fetch one page.

        Args:
            query: Page request; normalized here if the caller has not

        Returns:
            PageResult with at most ``limit`` items

        Raises:
            InvalidCursorError: Cursor is not a product identifier
        """
        query = query.normalized(self.default_limit, self.max_limit)
        limit = query.limit or self.default_limit

        where = self._filter_clauses(query.filters)
        if query.cursor:
            where.append(await self._cursor_clause(query))

        column = SORT_COLUMNS[query.sort_by]
        if query.sort_order == SortOrder.ASC:
            order_by = [column.asc(), Product.id.asc()]
        else:
            order_by = [column.desc(), Product.id.desc()]

        rows = await self.repository.find(where=where, order_by=order_by, limit=limit + 1)

        has_more = len(rows) > limit
        data = [serialize_product(p) for p in rows[:limit]]
        next_cursor = data[-1]["id"] if has_more and data else None

        logger.debug(
            "products_page_fetched",
            count=len(data),
            has_more=has_more,
            sort_by=query.sort_by.value,
            sort_order=query.sort_order.value,
        )
        return PageResult(data=data, next_cursor=next_cursor, has_more=has_more)

    def _filter_clauses(self, filters: ProductFilters) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = []
        if filters.category:
            clauses.append(Product.category == filters.category)
        if filters.min_price is not None:
            clauses.append(Product.price >= filters.min_price)
        if filters.max_price is not None:
            clauses.append(Product.price <= filters.max_price)
        if filters.search:
            pattern = _like_pattern(filters.search)
            clauses.append(
                or_(
                    Product.name.ilike(pattern, escape="\\"),
                    Product.description.ilike(pattern, escape="\\"),
                )
            )
        return clauses

    async def _cursor_clause(self, query: PageQuery) -> ColumnElement[bool]:
        """Translate the cursor id into a keyset predicate on (sort key, id)."""
        try:
            cursor_id = UUID(str(query.cursor))
        except ValueError as e:
            raise InvalidCursorError(cursor=query.cursor) from e

        ascending = query.sort_order == SortOrder.ASC
        anchor = await self.repository.get_by_id(cursor_id)
        if anchor is None:
            logger.warning("pagination_cursor_not_found", cursor=str(cursor_id))
            return Product.id > cursor_id if ascending else Product.id < cursor_id

        column = SORT_COLUMNS[query.sort_by]
        value = getattr(anchor, column.key)
        if ascending:
            return or_(column > value, and_(column == value, Product.id > cursor_id))
        return or_(column < value, and_(column == value, Product.id < cursor_id))
