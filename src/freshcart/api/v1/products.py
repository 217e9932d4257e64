"""Product catalogue endpoints.

Serves cursor-paginated, filterable product pages and single products,
both through the Redis cache.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from freshcart.core.logging import get_logger
from freshcart.dependencies import get_catalog_service
from freshcart.schemas.common import ErrorResponse
from freshcart.schemas.products import ProductDetailResponse, ProductPageResponse
from freshcart.services.catalog import CatalogService
from freshcart.services.pagination import (
    PageQuery,
    ProductFilters,
    SortField,
    SortOrder,
)

logger = get_logger(__name__)

router = APIRouter()


@router.get(
    "",
    response_model=ProductPageResponse,
    status_code=status.HTTP_200_OK,
    summary="List products",
    description=(
        "Cursor-paginated product list. Pass the returned nextCursor as "
        "cursor to fetch the following page."
    ),
    responses={
        200: {"description": "One page of products"},
        400: {"model": ErrorResponse, "description": "Invalid query parameters"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    },
)
async def list_products(
    catalog: Annotated[CatalogService, Depends(get_catalog_service)],
    cursor: Annotated[str | None, Query(description="Id of the last product seen")] = None,
    limit: Annotated[int | None, Query(description="Page size (max 100)")] = None,
    sort_by: Annotated[SortField, Query(alias="sortBy")] = SortField.CREATED_AT,
    sort_order: Annotated[SortOrder, Query(alias="sortOrder")] = SortOrder.DESC,
    category: Annotated[str | None, Query(description="Exact category")] = None,
    min_price: Annotated[float | None, Query(alias="minPrice")] = None,
    max_price: Annotated[float | None, Query(alias="maxPrice")] = None,
    search: Annotated[
        str | None, Query(description="Case-insensitive match on name or description")
    ] = None,
) -> ProductPageResponse:
    """List products with cursor pagination, sorting and filtering."""
    query = PageQuery(
        cursor=cursor or None,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
        filters=ProductFilters(
            category=category or None,
            min_price=min_price,
            max_price=max_price,
            search=search or None,
        ),
    )
    page = await catalog.list_products(query)

    logger.debug("list_products_success", count=len(page.data), has_more=page.has_more)
    return ProductPageResponse(
        data=page.data,
        next_cursor=page.next_cursor,
        has_more=page.has_more,
    )


@router.get(
    "/{product_id}",
    response_model=ProductDetailResponse,
    status_code=status.HTTP_200_OK,
    summary="Get product",
    responses={
        200: {"description": "The product"},
        404: {"model": ErrorResponse, "description": "Product not found"},
    },
)
async def get_product(
    product_id: str,
    catalog: Annotated[CatalogService, Depends(get_catalog_service)],
) -> ProductDetailResponse:
    """Get a single product by id."""
    product = await catalog.get_product(product_id)
    return ProductDetailResponse(data=product)
