"""Cart application service.

Orchestrates cart operations for a customer:
- Adding products after checking the catalog for availability and stock
- Replacing or removing line quantities
- Clearing the cart
- Summarizing the cart with per-line availability before checkout
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any

import structlog

from marketcart.catalog.store import CatalogStore
from marketcart.domain.entities import Cart, CartLine, CartSnapshot, Product
from marketcart.domain.exceptions import (
    CartLineNotFoundError,
    DomainError,
    InsufficientStockError,
    InvalidQuantityError,
    ProductNotFoundError,
    ProductUnavailableError,
)
from marketcart.domain.state_machines import ProductStatus
from marketcart.domain.value_objects import CustomerId, ProductId, UnavailableReason
from marketcart.infrastructure.locks import KeyedLock

logger = structlog.get_logger()


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class CartResult:
    """Result of a cart read or mutation."""

    cart: CartSnapshot | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class LineAvailability:
    """Whether one cart line can currently be ordered."""

    product_id: str
    available: bool
    reason: str | None = None
    available_quantity: int | None = None


@dataclass
class CartSummaryResult:
    """Result of summarizing a cart before checkout."""

    cart: CartSnapshot | None = None
    availability: list[LineAvailability] = field(default_factory=list)
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def all_available(self) -> bool:
        return all(line.available for line in self.availability)


# ============================================================================
# In-Memory Cart Repository
# ============================================================================


class CartRepository:
    """In-memory repository for carts, one per customer.

    Carts are stored and returned as copies. Callers that read, modify
    and save a cart hold :meth:`locked` for that customer so concurrent
    requests from several devices apply one after the other.
    """

    def __init__(self) -> None:
        self._carts: dict[str, Cart] = {}
        self._locks = KeyedLock("cart")

    @asynccontextmanager
    async def locked(self, customer_id: CustomerId) -> AsyncIterator[None]:
        """Serialize cart mutations for one customer."""
        async with self._locks.hold(str(customer_id)):
            yield

    async def get(self, customer_id: CustomerId) -> Cart | None:
        """Get a customer's cart, or None if none was created yet."""
        cart = self._carts.get(str(customer_id))
        return deepcopy(cart) if cart else None

    async def get_or_create(self, customer_id: CustomerId) -> Cart:
        """Get a customer's cart, creating an empty one lazily."""
        cart = await self.get(customer_id)
        if cart is None:
            cart = Cart(id=customer_id)
            await self.save(cart)
        return cart

    async def save(self, cart: Cart) -> None:
        """Save a cart. Buffered events stay with the caller's copy."""
        stored = deepcopy(cart)
        stored.collect_events()
        self._carts[str(cart.id)] = stored


# ============================================================================
# Cart Service
# ============================================================================


class CartService:
    """Application service for managing customer carts."""

    def __init__(self, catalog: CatalogStore, cart_repo: CartRepository) -> None:
        """Initialize service.

        Args:
            catalog: Catalog store for product and seller lookups.
            cart_repo: Cart repository.
        """
        self.catalog = catalog
        self.cart_repo = cart_repo

    async def get_cart(self, customer_id: str) -> CartResult:
        """Get the customer's cart, creating it on first read.

        Args:
            customer_id: Customer identifier.

        Returns:
            CartResult with the cart snapshot.
        """
        try:
            cart = await self.cart_repo.get_or_create(CustomerId(customer_id))
        except DomainError as e:
            return CartResult(success=False, error=e.message, error_code=e.error_code, details=e.details)
        return CartResult(cart=cart.snapshot())

    async def add_to_cart(self, customer_id: str, product_id: str, quantity: int = 1) -> CartResult:
        """Add units of a product to the customer's cart.

        The product must exist and be active, its seller must be active,
        and for tracked stock the resulting line quantity must not exceed
        the stock on hand.

        Args:
            customer_id: Customer identifier.
            product_id: Product to add.
            quantity: Units to add, at least 1.

        Returns:
            CartResult with the updated cart.
        """
        try:
            cid = CustomerId(customer_id)
            pid = ProductId(product_id)
            if quantity < 1:
                raise InvalidQuantityError(quantity)

            async with self.cart_repo.locked(cid):
                cart = await self.cart_repo.get_or_create(cid)
                existing = cart.get_line(pid)
                requested = quantity + (existing.quantity if existing else 0)
                product = await self._require_orderable(pid, requested)

                line = cart.add_line(product, quantity)
                await self.cart_repo.save(cart)

            self._log_events(cart)
            logger.info(
                "Product added to cart",
                customer_id=customer_id,
                product_id=product_id,
                quantity=quantity,
                line_quantity=line.quantity,
            )
            return CartResult(cart=cart.snapshot())

        except DomainError as e:
            logger.warning(
                "Failed to add product to cart",
                customer_id=customer_id,
                product_id=product_id,
                error_code=e.error_code,
                error=e.message,
            )
            return CartResult(success=False, error=e.message, error_code=e.error_code, details=e.details)

    async def update_cart_line(self, customer_id: str, product_id: str, quantity: int) -> CartResult:
        """Replace the quantity of a cart line.

        A quantity of 0 removes the line. A positive quantity re-checks
        product availability and stock like :meth:`add_to_cart`.

        Args:
            customer_id: Customer identifier.
            product_id: Product whose line changes.
            quantity: New quantity.

        Returns:
            CartResult with the updated cart.
        """
        try:
            cid = CustomerId(customer_id)
            pid = ProductId(product_id)
            async with self.cart_repo.locked(cid):
                cart = await self.cart_repo.get_or_create(cid)
                if quantity > 0:
                    if cart.get_line(pid) is None:
                        raise CartLineNotFoundError(customer_id, product_id)
                    await self._require_orderable(pid, quantity)

                cart.set_line_quantity(pid, quantity)
                await self.cart_repo.save(cart)

            self._log_events(cart)
            return CartResult(cart=cart.snapshot())

        except DomainError as e:
            logger.warning(
                "Failed to update cart line",
                customer_id=customer_id,
                product_id=product_id,
                error_code=e.error_code,
                error=e.message,
            )
            return CartResult(success=False, error=e.message, error_code=e.error_code, details=e.details)

    async def remove_cart_line(self, customer_id: str, product_id: str) -> CartResult:
        """Remove a product from the cart. Absent products are ignored.

        Args:
            customer_id: Customer identifier.
            product_id: Product to remove.

        Returns:
            CartResult with the updated cart.
        """
        try:
            cid = CustomerId(customer_id)
            pid = ProductId(product_id)
        except DomainError as e:
            return CartResult(success=False, error=e.message, error_code=e.error_code, details=e.details)

        async with self.cart_repo.locked(cid):
            cart = await self.cart_repo.get_or_create(cid)
            if cart.remove_line(pid):
                await self.cart_repo.save(cart)

        self._log_events(cart)
        return CartResult(cart=cart.snapshot())

    async def clear_cart(self, customer_id: str) -> CartResult:
        """Remove every line from the cart.

        Args:
            customer_id: Customer identifier.

        Returns:
            CartResult with the empty cart.
        """
        try:
            cid = CustomerId(customer_id)
        except DomainError as e:
            return CartResult(success=False, error=e.message, error_code=e.error_code, details=e.details)

        async with self.cart_repo.locked(cid):
            cart = await self.cart_repo.get_or_create(cid)
            cart.clear()
            await self.cart_repo.save(cart)

        self._log_events(cart)
        return CartResult(cart=cart.snapshot())

    async def get_cart_summary(self, customer_id: str) -> CartSummaryResult:
        """Summarize the cart and check every line against the catalog.

        Args:
            customer_id: Customer identifier.

        Returns:
            CartSummaryResult with totals and per-line availability.
        """
        try:
            cart = await self.cart_repo.get_or_create(CustomerId(customer_id))
            availability = [await self._check_line(line) for line in cart.lines]
            return CartSummaryResult(cart=cart.snapshot(), availability=availability)
        except DomainError as e:
            return CartSummaryResult(success=False, error=e.message, error_code=e.error_code, details=e.details)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _require_orderable(self, product_id: ProductId, quantity: int) -> Product:
        """Load a product and check it can be ordered in ``quantity``.

        Raises:
            ProductNotFoundError: If the product is unknown.
            ProductUnavailableError: If the product or its seller is inactive.
            InsufficientStockError: If tracked stock is below ``quantity``.
        """
        product = await self.catalog.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(str(product_id))
        if product.status == ProductStatus.OUT_OF_STOCK:
            raise InsufficientStockError(str(product_id), quantity, 0)
        if not product.is_active:
            raise ProductUnavailableError(str(product_id), f"product is {product.status.value}")
        if not await self.catalog.is_seller_active(product.seller_id):
            raise ProductUnavailableError(str(product_id), "seller is not accepting orders")
        if not product.has_stock_for(quantity):
            raise InsufficientStockError(str(product_id), quantity, product.stock_quantity)
        return product

    async def _check_line(self, line: CartLine) -> LineAvailability:
        pid = str(line.product_id)
        product = await self.catalog.get_product(line.product_id)
        if product is None:
            return LineAvailability(pid, False, UnavailableReason.PRODUCT_NOT_FOUND.value)
        if not await self.catalog.is_seller_active(product.seller_id):
            return LineAvailability(pid, False, UnavailableReason.SELLER_INACTIVE.value)

        reason = product.unavailable_reason(line.quantity)
        return LineAvailability(
            pid,
            reason is None,
            reason.value if reason else None,
            product.available_quantity,
        )

    def _log_events(self, cart: Cart) -> None:
        for event in cart.collect_events():
            logger.debug("Cart event", **event.to_dict())
