"""Data access for FreshCart."""

from freshcart.repositories.product import ProductRepository

__all__ = ["ProductRepository"]
