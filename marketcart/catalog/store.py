"""Catalog store interface and in-memory implementation.

The catalog is owned by product management; the checkout engine only
reads products and sellers and applies a few atomic updates: stock
adjustments, seller order statistics and rating aggregation.
"""

from abc import ABC, abstractmethod
from copy import deepcopy

import structlog

from marketcart.domain.entities import Product, Seller
from marketcart.domain.exceptions import ProductNotFoundError, SellerNotFoundError
from marketcart.domain.value_objects import (
    DeliveryMode,
    Money,
    ProductId,
    SellerId,
    SellerRating,
    SellerStats,
)
from marketcart.infrastructure.locks import KeyedLock

logger = structlog.get_logger()


class CatalogStore(ABC):
    """Read access and atomic updates on products and sellers.

    Every method may raise ``CatalogUnavailableError`` when the backend
    cannot be reached. Returned entities are copies; mutating them has
    no effect on the store.
    """

    @abstractmethod
    async def get_product(self, product_id: ProductId) -> Product | None:
        """Get a product by id.

        Args:
            product_id: Product to read.

        Returns:
            The product, or None if unknown.
        """

    @abstractmethod
    async def adjust_stock(self, product_id: ProductId, delta: int) -> int:
        """Atomically add ``delta`` to a product's stock.

        Negative deltas reserve stock and fail rather than take tracked
        stock below zero. Untracked products accept any delta unchanged.

        Args:
            product_id: Product to adjust.
            delta: Signed change in units.

        Returns:
            Stock quantity after the change.

        Raises:
            ProductNotFoundError: If the product is unknown.
            InsufficientStockError: If tracked stock would go negative.
        """

    @abstractmethod
    async def get_seller(self, seller_id: SellerId) -> Seller | None:
        """Get a seller by id, or None if unknown."""

    async def is_seller_active(self, seller_id: SellerId) -> bool:
        """Check if a seller exists and accepts orders."""
        seller = await self.get_seller(seller_id)
        return seller is not None and seller.is_active

    async def get_delivery_fee(
        self,
        seller_id: SellerId,
        mode: DeliveryMode = DeliveryMode.DELIVERY,
    ) -> Money:
        """Get the seller's delivery fee for ``mode``.

        Raises:
            SellerNotFoundError: If the seller is unknown.
        """
        seller = await self.get_seller(seller_id)
        if seller is None:
            raise SellerNotFoundError(str(seller_id))
        return seller.fee_for(mode)

    @abstractmethod
    async def record_order(self, seller_id: SellerId, revenue: Money) -> SellerStats:
        """Atomically count an order and its revenue for a seller."""

    @abstractmethod
    async def revert_order(self, seller_id: SellerId, revenue: Money) -> SellerStats:
        """Atomically undo :meth:`record_order` for a rolled back order."""

    @abstractmethod
    async def record_rating(self, seller_id: SellerId, value: int) -> SellerRating:
        """Atomically fold a rating into the seller's running average.

        Args:
            seller_id: Rated seller.
            value: Rating, 1..5.

        Returns:
            The seller's rating after folding.

        Raises:
            SellerNotFoundError: If the seller is unknown.
        """

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryCatalogStore(CatalogStore):
    """Process-local catalog.

    Each product and each seller has its own asyncio lock so that a
    read-check-write on one record never interleaves with another
    coroutine's update of the same record.
    """

    def __init__(self) -> None:
        self._products: dict[str, Product] = {}
        self._sellers: dict[str, Seller] = {}
        self._product_locks = KeyedLock("product")
        self._seller_locks = KeyedLock("seller")

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------

    def add_product(self, product: Product) -> Product:
        """Insert or replace a product."""
        self._products[str(product.id)] = deepcopy(product)
        return product

    def add_seller(self, seller: Seller) -> Seller:
        """Insert or replace a seller."""
        self._sellers[str(seller.id)] = deepcopy(seller)
        return seller

    # -------------------------------------------------------------------------
    # Products
    # -------------------------------------------------------------------------

    async def get_product(self, product_id: ProductId) -> Product | None:
        product = self._products.get(str(product_id))
        return deepcopy(product) if product else None

    async def adjust_stock(self, product_id: ProductId, delta: int) -> int:
        async with self._product_locks.hold(str(product_id)):
            product = self._products.get(str(product_id))
            if product is None:
                raise ProductNotFoundError(str(product_id))
            new_quantity = product.apply_stock_delta(delta)

        logger.debug(
            "Stock adjusted",
            product_id=str(product_id),
            delta=delta,
            stock_quantity=new_quantity,
        )
        return new_quantity

    # -------------------------------------------------------------------------
    # Sellers
    # -------------------------------------------------------------------------

    async def get_seller(self, seller_id: SellerId) -> Seller | None:
        seller = self._sellers.get(str(seller_id))
        return deepcopy(seller) if seller else None

    def _require_seller(self, seller_id: SellerId) -> Seller:
        seller = self._sellers.get(str(seller_id))
        if seller is None:
            raise SellerNotFoundError(str(seller_id))
        return seller

    async def record_order(self, seller_id: SellerId, revenue: Money) -> SellerStats:
        async with self._seller_locks.hold(str(seller_id)):
            return self._require_seller(seller_id).record_order(revenue)

    async def revert_order(self, seller_id: SellerId, revenue: Money) -> SellerStats:
        async with self._seller_locks.hold(str(seller_id)):
            return self._require_seller(seller_id).revert_order(revenue)

    async def record_rating(self, seller_id: SellerId, value: int) -> SellerRating:
        async with self._seller_locks.hold(str(seller_id)):
            return self._require_seller(seller_id).record_rating(value)
