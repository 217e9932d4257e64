"""ProductRepository - read access to the product table.

The repository only executes queries; the pagination engine decides which
predicates and ordering to apply.
"""

from collections.abc import Sequence
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from freshcart.models.product import Product


class ProductRepository:
    """Queries over Product rows within one request's session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, product_id: UUID) -> Product | None:
        """Load one product; None if it does not exist."""
        return await self.session.get(Product, product_id)

    async def find(
        self,
        *,
        where: Sequence[ColumnElement[bool]] = (),
        order_by: Sequence[ColumnElement[Any]] = (),
        limit: int = 100,
    ) -> list[Product]:
        """Select products matching all predicates in the given order.

        Args:
            where: Predicates combined with AND
            order_by: Ordering clauses, applied in sequence
            limit: Maximum rows to return

        Returns:
            Matching products
        """
        query = select(Product).where(*where).order_by(*order_by).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())
