"""Product and seller catalog.

Provides the catalog store interface consumed by the cart and checkout
services, with in-memory and SQL implementations.
"""

from marketcart.catalog.models import ProductModel, SellerModel
from marketcart.catalog.repository import SqlCatalogStore
from marketcart.catalog.store import CatalogStore, InMemoryCatalogStore

__all__ = [
    # Models
    "ProductModel",
    "SellerModel",
    # Stores
    "CatalogStore",
    "InMemoryCatalogStore",
    "SqlCatalogStore",
]
