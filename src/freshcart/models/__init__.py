"""Models package for FreshCart.

This module exports the Base class and all model classes.
"""

from freshcart.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from freshcart.models.product import Product

__all__ = [
    # Base and Mixins
    "Base",
    "UUIDPrimaryKeyMixin",
    "TimestampMixin",
    # Catalogue
    "Product",
]
