"""Product model - the catalogue entity served by the read endpoints."""

from sqlalchemy import Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from freshcart.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Product(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A sellable catalogue item.

    Attributes:
        name: Display name, searchable
        description: Free text, searchable
        price: Unit price
        category: Category label used for equality filtering
    """

    __tablename__ = "products"
    __table_args__ = (
        # Keyset pagination orders by (sort key, id)
        Index("ix_products_price_id", "price", "id"),
        Index("ix_products_name_id", "name", "id"),
        Index("ix_products_created_at_id", "created_at", "id"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[float] = mapped_column(
        Numeric(10, 2, asdecimal=False), nullable=False
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, name='{self.name}', price={self.price})>"
