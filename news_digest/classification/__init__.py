"""News category taxonomy."""

from .categories import Category, CategoryResolver, resolver

__all__ = ["Category", "CategoryResolver", "resolver"]
