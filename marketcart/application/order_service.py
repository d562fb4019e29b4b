"""Order application service.

Orchestrates the order lifecycle after checkout:
- Reading and listing orders for customers and sellers
- Status transitions requested by the owning seller
- Cancellation with exactly-once stock restoration
- Post-delivery rating folded into the seller's average
"""

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any

import structlog

from marketcart.catalog.store import CatalogStore
from marketcart.domain.entities import Order, OrderLine
from marketcart.domain.exceptions import (
    AccessDeniedError,
    ConcurrentModificationError,
    DomainError,
    DuplicateOrderNumberError,
    OrderNotFoundError,
    ProductNotFoundError,
)
from marketcart.domain.state_machines import OrderStatus
from marketcart.domain.value_objects import Actor, ActorRole, OrderId, SellerRating
from marketcart.infrastructure.locks import KeyedLock
from marketcart.infrastructure.notifications import NotificationPublisher

logger = structlog.get_logger()


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class OrderResult:
    """Result of reading or updating an order."""

    order: Order | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class RateOrderResult:
    """Result of rating an order."""

    order: Order | None = None
    seller_rating: SellerRating | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ListOrdersResult:
    """Result of listing orders."""

    orders: list[Order] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


# ============================================================================
# In-Memory Order Repository
# ============================================================================


class OrderRepository:
    """In-memory repository for orders.

    Orders are stored and returned as copies and are never deleted.
    Order numbers are unique across all orders.
    """

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._by_number: dict[str, str] = {}
        self._locks = KeyedLock("order")

    @asynccontextmanager
    async def locked(self, order_id: str) -> AsyncIterator[None]:
        """Serialize status changes of one order."""
        async with self._locks.hold(order_id):
            yield

    async def save(self, order: Order) -> None:
        """Insert or update an order.

        An update must carry the version it was loaded at. On success the
        caller's copy becomes the new baseline for its next save.

        Raises:
            DuplicateOrderNumberError: If another order already uses the number.
            ConcurrentModificationError: If the stored order changed since
                this copy was loaded, or the order is new but its id is taken.
        """
        order_id = str(order.id)
        number = str(order.order_number)
        owner = self._by_number.get(number)
        if owner is not None and owner != order_id:
            raise DuplicateOrderNumberError(number)

        current = self._orders.get(order_id)
        if current is not None and order.persisted_version != current.version:
            raise ConcurrentModificationError(order_id, order.persisted_version, current.version)

        order.persisted_version = order.version
        stored = deepcopy(order)
        stored.collect_events()
        self._orders[order_id] = stored
        self._by_number[number] = order_id

    async def get(self, order_id: str) -> Order | None:
        """Get order by ID."""
        order = self._orders.get(order_id)
        return deepcopy(order) if order else None

    async def get_by_number(self, order_number: str) -> Order | None:
        """Get order by its order number."""
        order_id = self._by_number.get(order_number)
        return await self.get(order_id) if order_id else None

    async def number_exists(self, order_number: str) -> bool:
        return order_number in self._by_number

    async def list_for_customer(
        self,
        customer_id: str,
        page: int = 1,
        page_size: int = 20,
        status: OrderStatus | None = None,
    ) -> tuple[list[Order], int]:
        """List a customer's orders, newest first."""
        return self._list(lambda o: str(o.customer_id) == customer_id, page, page_size, status)

    async def list_for_seller(
        self,
        seller_id: str,
        page: int = 1,
        page_size: int = 20,
        status: OrderStatus | None = None,
    ) -> tuple[list[Order], int]:
        """List a seller's orders, newest first."""
        return self._list(lambda o: str(o.seller_id) == seller_id, page, page_size, status)

    def _list(
        self,
        owned: Callable[[Order], bool],
        page: int,
        page_size: int,
        status: OrderStatus | None,
    ) -> tuple[list[Order], int]:
        # Insertion position breaks created_at ties
        ranked = [(o.created_at, i, o) for i, o in enumerate(self._orders.values()) if owned(o)]
        if status:
            ranked = [entry for entry in ranked if entry[2].status == status]

        ranked.sort(key=lambda entry: entry[:2], reverse=True)
        orders = [entry[2] for entry in ranked]

        total = len(orders)
        start = (page - 1) * page_size
        end = start + page_size
        return [deepcopy(o) for o in orders[start:end]], total


# ============================================================================
# Order Service
# ============================================================================


class OrderService:
    """Application service for the order lifecycle.

    Every mutation runs under the order's lock: load, change, release
    or adjust catalog state, save. A second cancel of the same order
    therefore always sees the first one's result.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        catalog: CatalogStore,
        notifier: NotificationPublisher,
        default_page_size: int = 20,
        max_page_size: int = 100,
    ) -> None:
        """Initialize service.

        Args:
            order_repo: Order repository.
            catalog: Catalog store for stock and seller rating updates.
            notifier: Publisher for order events.
            default_page_size: Page size when none is requested.
            max_page_size: Upper bound on requested page sizes.
        """
        self.order_repo = order_repo
        self.catalog = catalog
        self.notifier = notifier
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_order(self, order_id: str, actor: Actor) -> OrderResult:
        """Get an order visible to the actor.

        Args:
            order_id: Order identifier.
            actor: Customer who placed it or seller fulfilling it.

        Returns:
            OrderResult with the order if found and visible.
        """
        try:
            order = await self._load(order_id)
            self._authorize(order, actor, resource=f"order {order_id}")
            return OrderResult(order=order)
        except DomainError as e:
            return OrderResult(success=False, error=e.message, error_code=e.error_code, details=e.details)

    async def list_orders_for_customer(
        self,
        customer_id: str,
        page: int = 1,
        page_size: int | None = None,
        status: str | None = None,
    ) -> ListOrdersResult:
        """List a customer's orders, newest first.

        Args:
            customer_id: Customer identifier.
            page: Page number (1-based).
            page_size: Items per page.
            status: Optional status filter.

        Returns:
            ListOrdersResult with paginated orders.
        """
        return await self._list_orders(self.order_repo.list_for_customer, customer_id, page, page_size, status)

    async def list_orders_for_seller(
        self,
        seller_id: str,
        page: int = 1,
        page_size: int | None = None,
        status: str | None = None,
    ) -> ListOrdersResult:
        """List a seller's orders, newest first.

        Args:
            seller_id: Seller identifier.
            page: Page number (1-based).
            page_size: Items per page.
            status: Optional status filter.

        Returns:
            ListOrdersResult with paginated orders.
        """
        return await self._list_orders(self.order_repo.list_for_seller, seller_id, page, page_size, status)

    async def _list_orders(self, lister, owner_id, page, page_size, status) -> ListOrdersResult:
        page = max(page, 1)
        page_size = min(max(page_size or self.default_page_size, 1), self.max_page_size)
        try:
            status_enum = OrderStatus.parse(status) if status else None
        except DomainError as e:
            return ListOrdersResult(success=False, error=e.message, error_code=e.error_code, details=e.details)

        orders, total = await lister(owner_id, page=page, page_size=page_size, status=status_enum)
        return ListOrdersResult(orders=orders, total=total, page=page, page_size=page_size)

    # -------------------------------------------------------------------------
    # Status Transitions
    # -------------------------------------------------------------------------

    async def set_order_status(self, order_id: str, status: str, note: str = "", actor: Actor | None = None) -> OrderResult:
        """Move an order to a new status on behalf of its seller.

        Setting ``cancelled`` is handled by :meth:`cancel_order` so that
        stock is always restored.

        Args:
            order_id: Order identifier.
            status: Target status string.
            note: Timeline note.
            actor: Seller requesting the change; None for internal callers.

        Returns:
            OrderResult with the updated order.
        """
        try:
            target = OrderStatus.parse(status)
        except DomainError as e:
            return OrderResult(success=False, error=e.message, error_code=e.error_code, details=e.details)

        if target == OrderStatus.CANCELLED:
            return await self.cancel_order(order_id, note or None, actor)

        try:
            async with self.order_repo.locked(order_id):
                order = await self._load(order_id)
                if actor is not None:
                    self._authorize(order, actor, resource=f"order {order_id}", role=ActorRole.SELLER)
                old_status = order.status
                order.set_status(target, note or "")
                await self.order_repo.save(order)

            logger.info(
                "Order status changed",
                order_id=order_id,
                order_number=str(order.order_number),
                old_status=old_status.value,
                new_status=target.value,
            )
            await self.notifier.publish_all(order.collect_events())
            return OrderResult(order=order)

        except DomainError as e:
            logger.warning(
                "Order status change rejected",
                order_id=order_id,
                target_status=status,
                error_code=e.error_code,
            )
            return OrderResult(success=False, error=e.message, error_code=e.error_code, details=e.details)
        except Exception as e:
            logger.error("Failed to update order status", order_id=order_id, error=str(e))
            return OrderResult(success=False, error=str(e), error_code="ORDER_UPDATE_FAILED")

    async def cancel_order(self, order_id: str, reason: str | None = None, actor: Actor | None = None) -> OrderResult:
        """Cancel an order and restore the stock of every line.

        Args:
            order_id: Order identifier.
            reason: Cancellation reason for the timeline.
            actor: Customer or seller of the order; None for internal callers.

        Returns:
            OrderResult with the cancelled order.
        """
        try:
            async with self.order_repo.locked(order_id):
                order = await self._load(order_id)
                if actor is not None:
                    self._authorize(order, actor, resource=f"order {order_id}")

                order.cancel(reason)
                restored = await self._restore_stock(order)
                try:
                    await self.order_repo.save(order)
                except Exception:
                    await self._reserve_again(order, restored)
                    raise

            logger.info(
                "Order cancelled",
                order_id=order_id,
                order_number=str(order.order_number),
                reason=order.cancellation_reason,
                lines_restored=len(restored),
            )
            await self.notifier.publish_all(order.collect_events())
            return OrderResult(order=order)

        except DomainError as e:
            logger.warning("Order cancellation rejected", order_id=order_id, error_code=e.error_code)
            return OrderResult(success=False, error=e.message, error_code=e.error_code, details=e.details)
        except Exception as e:
            logger.error("Failed to cancel order", order_id=order_id, error=str(e))
            return OrderResult(success=False, error=str(e), error_code="ORDER_UPDATE_FAILED")

    async def rate_order(
        self,
        order_id: str,
        value: int,
        review: str | None = None,
        actor: Actor | None = None,
    ) -> RateOrderResult:
        """Rate a delivered order and fold the rating into the seller's average.

        The order's rating and the seller aggregate change together: if
        the seller update fails the order is saved back unrated.

        Args:
            order_id: Order identifier.
            value: Stars, 1..5.
            review: Optional review text.
            actor: Customer who placed the order; None for internal callers.

        Returns:
            RateOrderResult with the rated order and the seller's new rating.
        """
        try:
            async with self.order_repo.locked(order_id):
                order = await self._load(order_id)
                if actor is not None:
                    self._authorize(order, actor, resource=f"order {order_id}", role=ActorRole.CUSTOMER)

                order.rate(value, review or "")
                await self.order_repo.save(order)
                try:
                    seller_rating = await self.catalog.record_rating(order.seller_id, value)
                except Exception:
                    order.withdraw_rating()
                    await self.order_repo.save(order)
                    raise

            logger.info(
                "Order rated",
                order_id=order_id,
                seller_id=str(order.seller_id),
                value=value,
                seller_average=str(seller_rating.average),
                seller_rating_count=seller_rating.count,
            )
            await self.notifier.publish_all(order.collect_events())
            return RateOrderResult(order=order, seller_rating=seller_rating)

        except DomainError as e:
            logger.warning("Order rating rejected", order_id=order_id, error_code=e.error_code)
            return RateOrderResult(success=False, error=e.message, error_code=e.error_code, details=e.details)
        except Exception as e:
            logger.error("Failed to rate order", order_id=order_id, error=str(e))
            return RateOrderResult(success=False, error=str(e), error_code="ORDER_UPDATE_FAILED")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _load(self, order_id: str) -> Order:
        try:
            OrderId.from_string(order_id)
        except ValueError:
            raise OrderNotFoundError(order_id) from None
        order = await self.order_repo.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    @staticmethod
    def _authorize(order: Order, actor: Actor, resource: str, role: ActorRole | None = None) -> None:
        """Check the actor is this order's customer or seller.

        Raises:
            AccessDeniedError: If the actor has the wrong role or owns nothing here.
        """
        if role is not None and actor.role != role:
            raise AccessDeniedError(actor.id, resource)
        owner = order.customer_id if actor.is_customer else order.seller_id
        if str(owner) != actor.id:
            raise AccessDeniedError(actor.id, resource)

    async def _restore_stock(self, order: Order) -> list[OrderLine]:
        """Give every line's units back to the catalog.

        Products deleted since checkout are skipped. If the catalog fails
        midway, units already given back are taken again and the error
        propagates, so a retry restores everything exactly once.

        Returns:
            Lines whose stock was restored.
        """
        restored: list[OrderLine] = []
        try:
            for line in order.lines:
                try:
                    await self.catalog.adjust_stock(line.product_id, line.quantity)
                except ProductNotFoundError:
                    logger.warning(
                        "Product gone, stock not restored",
                        order_id=str(order.id),
                        product_id=str(line.product_id),
                    )
                    continue
                restored.append(line)
        except Exception:
            await self._reserve_again(order, restored)
            raise
        return restored

    async def _reserve_again(self, order: Order, lines: list[OrderLine]) -> None:
        for line in lines:
            try:
                await self.catalog.adjust_stock(line.product_id, -line.quantity)
            except Exception as e:
                logger.error(
                    "Failed to re-reserve stock after aborted cancellation",
                    order_id=str(order.id),
                    product_id=str(line.product_id),
                    quantity=line.quantity,
                    error=str(e),
                )
