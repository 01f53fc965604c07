"""Product catalog: snapshot models and the local query service."""

from quotecat.catalog.schemas import CatalogSnapshot, Category, Product
from quotecat.catalog.service import NOT_LOADED_MESSAGE, CatalogService

__all__ = [
    "CatalogService",
    "CatalogSnapshot",
    "Category",
    "NOT_LOADED_MESSAGE",
    "Product",
]
