"""Checkout application service.

Turns a customer's multi-seller cart into one order per seller:
- Splits the cart by seller in first-seen order
- Skips inactive sellers and unavailable lines, reporting each skip
- Reserves stock with the catalog's atomic decrement
- Persists one order per seller group and counts it in seller stats
- Rolls every group back if any group fails to persist
- Clears the cart only when at least one order was placed
"""

from dataclasses import dataclass, field
from typing import Any

import structlog

from marketcart.application.cart_service import CartRepository
from marketcart.application.order_service import OrderRepository
from marketcart.catalog.store import CatalogStore
from marketcart.domain.entities import CartLine, Order, OrderLine, Product
from marketcart.domain.exceptions import (
    CatalogUnavailableError,
    CheckoutFailedError,
    DomainError,
    EmptyCartError,
    InsufficientStockError,
    InvalidDeliveryAddressError,
    NoValidItemsError,
    ProductNotFoundError,
)
from marketcart.domain.value_objects import (
    CustomerId,
    DeliveryAddress,
    DeliveryMode,
    OrderNumber,
    PaymentMethod,
    SellerId,
    UnavailableReason,
)
from marketcart.infrastructure.notifications import NotificationPublisher

logger = structlog.get_logger()

ROLLBACK_NOTE = "Checkout rolled back"
MAX_ORDER_NUMBER_ATTEMPTS = 5


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class SkippedLine:
    """A cart line that did not make it into an order."""

    product_id: str
    seller_id: str
    quantity: int
    reason: UnavailableReason
    available_quantity: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "seller_id": self.seller_id,
            "quantity": self.quantity,
            "reason": self.reason.value,
            "available_quantity": self.available_quantity,
        }


@dataclass
class CheckoutResult:
    """Result of a checkout."""

    orders: list[Order] = field(default_factory=list)
    skipped: list[SkippedLine] = field(default_factory=list)
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class _PlacedOrder:
    """An order persisted during the current checkout, for rollback."""

    order: Order
    stats_recorded: bool = False


# ============================================================================
# Checkout Service
# ============================================================================


class CheckoutService:
    """Application service for converting carts into orders.

    The customer's cart lock is held for the whole checkout, so cart
    edits from another device wait until the checkout finishes. Stock
    is reserved line by line with the catalog's atomic decrement; two
    customers racing for the last unit cannot both get it.
    """

    def __init__(
        self,
        catalog: CatalogStore,
        cart_repo: CartRepository,
        order_repo: OrderRepository,
        notifier: NotificationPublisher,
        order_number_prefix: str = "MLM",
    ) -> None:
        """Initialize service.

        Args:
            catalog: Catalog store for products, sellers and stock.
            cart_repo: Cart repository.
            order_repo: Order repository.
            notifier: Publisher for order events.
            order_number_prefix: Prefix of generated order numbers.
        """
        self.catalog = catalog
        self.cart_repo = cart_repo
        self.order_repo = order_repo
        self.notifier = notifier
        self.order_number_prefix = order_number_prefix

    async def checkout(
        self,
        customer_id: str,
        delivery_mode: DeliveryMode,
        delivery_address: DeliveryAddress | None = None,
        customer_note: str | None = None,
        payment_method: PaymentMethod = PaymentMethod.COD,
    ) -> CheckoutResult:
        """Place one order per seller in the customer's cart.

        Args:
            customer_id: Customer checking out.
            delivery_mode: Pickup or home delivery, for every order.
            delivery_address: Required for home delivery.
            customer_note: Note copied onto every order.
            payment_method: Cash on delivery or online.

        Returns:
            CheckoutResult with the created orders and skipped lines.
        """
        skipped: list[SkippedLine] = []
        try:
            cid = CustomerId(customer_id)
            if delivery_mode == DeliveryMode.DELIVERY and delivery_address is None:
                raise InvalidDeliveryAddressError()

            async with self.cart_repo.locked(cid):
                cart = await self.cart_repo.get(cid)
                if cart is None or cart.is_empty:
                    raise EmptyCartError(customer_id)

                placed: list[_PlacedOrder] = []
                try:
                    for seller_id, lines in cart.lines_by_seller().items():
                        order = await self._place_group(
                            cid,
                            seller_id,
                            lines,
                            skipped,
                            delivery_mode=delivery_mode,
                            delivery_address=delivery_address,
                            customer_note=customer_note,
                            payment_method=payment_method,
                        )
                        if order is not None:
                            placed.append(order)

                    if not placed:
                        raise NoValidItemsError(customer_id, [s.to_dict() for s in skipped])

                    cart.clear()
                    await self.cart_repo.save(cart)
                except (NoValidItemsError, CatalogUnavailableError):
                    await self._roll_back(placed)
                    raise
                except Exception as e:
                    logger.error(
                        "Checkout failed, rolling back",
                        customer_id=customer_id,
                        orders_placed=len(placed),
                        error=str(e),
                    )
                    await self._roll_back(placed)
                    raise CheckoutFailedError(customer_id, str(e)) from e

            orders = [p.order for p in placed]
            for order in orders:
                await self.notifier.publish_all(order.collect_events())
            cart.collect_events()

            logger.info(
                "Checkout completed",
                customer_id=customer_id,
                order_count=len(orders),
                order_numbers=[str(o.order_number) for o in orders],
                skipped_count=len(skipped),
            )
            return CheckoutResult(orders=orders, skipped=skipped)

        except DomainError as e:
            logger.warning(
                "Checkout rejected",
                customer_id=customer_id,
                error_code=e.error_code,
                error=e.message,
            )
            return CheckoutResult(
                skipped=skipped,
                success=False,
                error=e.message,
                error_code=e.error_code,
                details=e.details,
            )

    # -------------------------------------------------------------------------
    # Seller Groups
    # -------------------------------------------------------------------------

    async def _place_group(
        self,
        customer_id: CustomerId,
        seller_id: SellerId,
        lines: list[CartLine],
        skipped: list[SkippedLine],
        *,
        delivery_mode: DeliveryMode,
        delivery_address: DeliveryAddress | None,
        customer_note: str | None,
        payment_method: PaymentMethod,
    ) -> _PlacedOrder | None:
        """Reserve stock and persist the order for one seller.

        Returns:
            The placed order, or None if the whole group was skipped.

        Raises:
            CatalogUnavailableError: If the catalog cannot be reached.
            Exception: Any persistence failure, after releasing this
                group's reservations.
        """
        seller = await self.catalog.get_seller(seller_id)
        if seller is None or not seller.is_active:
            for line in lines:
                skipped.append(self._skip(line, UnavailableReason.SELLER_INACTIVE))
            logger.info("Seller skipped at checkout", seller_id=str(seller_id), line_count=len(lines))
            return None

        candidates: list[tuple[CartLine, Product]] = []
        for line in lines:
            product = await self.catalog.get_product(line.product_id)
            if product is None:
                skipped.append(self._skip(line, UnavailableReason.PRODUCT_NOT_FOUND))
                continue
            reason = product.unavailable_reason(line.quantity)
            if reason is not None:
                skipped.append(self._skip(line, reason, product.available_quantity))
                continue
            candidates.append((line, product))

        reserved: list[tuple[CartLine, Product]] = []
        try:
            for line, product in candidates:
                try:
                    await self.catalog.adjust_stock(line.product_id, -line.quantity)
                except InsufficientStockError as e:
                    skipped.append(self._skip(line, UnavailableReason.INSUFFICIENT_STOCK, e.available))
                    continue
                except ProductNotFoundError:
                    skipped.append(self._skip(line, UnavailableReason.PRODUCT_NOT_FOUND))
                    continue
                reserved.append((line, product))

            if not reserved:
                return None

            order = Order.place(
                order_number=await self._draw_order_number(),
                customer_id=customer_id,
                seller_id=seller_id,
                lines=[OrderLine.from_cart_line(line, product) for line, product in reserved],
                delivery_mode=delivery_mode,
                delivery_fee=seller.fee_for(delivery_mode),
                delivery_address=delivery_address if delivery_mode == DeliveryMode.DELIVERY else None,
                payment_method=payment_method,
                customer_note=customer_note,
            )
            await self.order_repo.save(order)
        except Exception:
            await self._release([(line.product_id, line.quantity) for line, _ in reserved])
            raise

        placed = _PlacedOrder(order=order)
        try:
            await self.catalog.record_order(seller_id, order.total)
            placed.stats_recorded = True
        except Exception:
            await self._roll_back([placed])
            raise

        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=str(order.order_number),
            seller_id=str(seller_id),
            line_count=len(order.lines),
            total_cents=order.total.amount_cents,
        )
        return placed

    async def _draw_order_number(self) -> OrderNumber:
        for _ in range(MAX_ORDER_NUMBER_ATTEMPTS):
            number = OrderNumber.generate(self.order_number_prefix)
            if not await self.order_repo.number_exists(str(number)):
                return number
        # The repository still rejects a duplicate on save.
        return OrderNumber.generate(self.order_number_prefix)

    @staticmethod
    def _skip(line: CartLine, reason: UnavailableReason, available: int | None = None) -> SkippedLine:
        logger.info(
            "Cart line skipped at checkout",
            product_id=str(line.product_id),
            seller_id=str(line.seller_id),
            reason=reason.value,
        )
        return SkippedLine(
            product_id=str(line.product_id),
            seller_id=str(line.seller_id),
            quantity=line.quantity,
            reason=reason,
            available_quantity=available,
        )

    # -------------------------------------------------------------------------
    # Compensation
    # -------------------------------------------------------------------------

    async def _release(self, reservations: list[tuple[Any, int]]) -> None:
        """Give reserved units back, logging anything that cannot be undone."""
        for product_id, quantity in reservations:
            try:
                await self.catalog.adjust_stock(product_id, quantity)
            except Exception as e:
                logger.error(
                    "Failed to release reserved stock",
                    product_id=str(product_id),
                    quantity=quantity,
                    error=str(e),
                )

    async def _roll_back(self, placed: list[_PlacedOrder]) -> None:
        """Cancel orders placed by this checkout and undo their side effects."""
        for entry in reversed(placed):
            order = entry.order
            order.cancel(ROLLBACK_NOTE)
            order.collect_events()
            try:
                await self.order_repo.save(order)
            except Exception as e:
                logger.error("Failed to cancel rolled back order", order_id=str(order.id), error=str(e))

            await self._release([(line.product_id, line.quantity) for line in order.lines])

            if entry.stats_recorded:
                try:
                    await self.catalog.revert_order(order.seller_id, order.total)
                except Exception as e:
                    logger.error(
                        "Failed to revert seller stats",
                        seller_id=str(order.seller_id),
                        order_id=str(order.id),
                        error=str(e),
                    )

            logger.info(
                "Order rolled back",
                order_id=str(order.id),
                order_number=str(order.order_number),
            )
