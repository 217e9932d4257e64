"""Product catalogue API schemas.

Product payloads use camelCase timestamps (``createdAt``/``updatedAt``) and
the list envelope carries ``nextCursor``/``hasMore`` for cursor pagination.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from freshcart.schemas.common import BaseSchema

# =============================================================================
# Product
# =============================================================================


class ProductOut(BaseSchema):
    """A product as served to clients and stored in the cache."""

    id: UUID = Field(..., description="Product identifier")
    name: str = Field(..., description="Product name")
    description: str | None = Field(None, description="Free-text description")
    price: float = Field(..., ge=0, description="Unit price")
    category: str = Field(..., description="Catalogue category")
    created_at: datetime = Field(..., serialization_alias="createdAt")
    updated_at: datetime = Field(..., serialization_alias="updatedAt")

    def to_cache_dict(self) -> dict[str, Any]:
        """JSON-ready dict: id as string, price as float, ISO timestamps."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# Responses
# =============================================================================


class ProductPageResponse(BaseModel):
    """One page of products.

    Invariant: ``nextCursor`` is set exactly when ``hasMore`` is true, and
    equals the id of the last item in ``data``.
    """

    status: str = Field("success")
    data: list[dict[str, Any]] = Field(default_factory=list)
    next_cursor: str | None = Field(None, serialization_alias="nextCursor")
    has_more: bool = Field(False, serialization_alias="hasMore")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "success",
                "data": [
                    {
                        "id": "6f1c2b0e-8d0a-4c1e-9a57-1f0e2d3c4b5a",
                        "name": "Organic Bananas",
                        "description": "Fair-trade, 1kg bunch",
                        "price": 2.49,
                        "category": "produce",
                        "createdAt": "2025-01-10T09:12:44.120000",
                        "updatedAt": "2025-01-10T09:12:44.120000",
                    }
                ],
                "nextCursor": "6f1c2b0e-8d0a-4c1e-9a57-1f0e2d3c4b5a",
                "hasMore": True,
            }
        }
    )


class ProductDetailResponse(BaseModel):
    """A single product wrapped in the status envelope."""

    status: str = Field("success")
    data: dict[str, Any]


class ExternalProductsResponse(BaseModel):
    """Products fetched from the upstream data API."""

    status: str = Field("success")
    data: list[dict[str, Any]] = Field(default_factory=list)
    count: int = Field(0, ge=0)
