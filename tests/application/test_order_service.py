"""Tests for the order application service."""

import asyncio
from decimal import Decimal

import pytest
from factories import RecordingPublisher, seed_catalog

from marketcart.application.cart_service import CartRepository, CartService
from marketcart.application.checkout_service import CheckoutService
from marketcart.application.order_service import OrderRepository, OrderService
from marketcart.catalog.store import InMemoryCatalogStore
from marketcart.domain import Order
from marketcart.domain.exceptions import CatalogUnavailableError, ConcurrentModificationError, ProductNotFoundError
from marketcart.domain.state_machines import OrderStatus, PaymentStatus
from marketcart.domain.value_objects import Actor, ActorRole, DeliveryMode, ProductId, SellerId, SellerRating

CUSTOMER = Actor(id="cust-1", role=ActorRole.CUSTOMER)
OTHER_CUSTOMER = Actor(id="cust-2", role=ActorRole.CUSTOMER)
SELLER = Actor(id="fresh-mart", role=ActorRole.SELLER)
OTHER_SELLER = Actor(id="daily-needs", role=ActorRole.SELLER)


async def place_order(
    cart_service: CartService,
    checkout_service: CheckoutService,
    customer_id: str = "cust-1",
    product_id: str = "apples",
    quantity: int = 2,
) -> Order:
    await cart_service.add_to_cart(customer_id, product_id, quantity)
    result = await checkout_service.checkout(customer_id, DeliveryMode.PICKUP)
    assert result.success, result.error
    return result.orders[0]


async def stock_of(catalog: InMemoryCatalogStore, product_id: str) -> int:
    product = await catalog.get_product(ProductId(product_id))
    return product.stock_quantity


class RestockFailingCatalogStore(InMemoryCatalogStore):
    """Catalog that raises ``error`` when units of one product come back."""

    def __init__(self, failing_product: str, error: Exception) -> None:
        super().__init__()
        self.failing_product = failing_product
        self.error = error

    async def adjust_stock(self, product_id: ProductId, delta: int) -> int:
        if str(product_id) == self.failing_product and delta > 0:
            raise self.error
        return await super().adjust_stock(product_id, delta)


class CancelFailingOrderRepository(OrderRepository):
    """Order repository that cannot store cancellations."""

    async def save(self, order: Order) -> None:
        if order.status == OrderStatus.CANCELLED:
            raise RuntimeError("disk full")
        await super().save(order)


class RacingOrderRepository(OrderRepository):
    """Order repository where another writer confirms the order right after a read."""

    def __init__(self) -> None:
        super().__init__()
        self.race = False

    async def get(self, order_id: str) -> Order | None:
        order = await super().get(order_id)
        if order is not None and self.race:
            self.race = False
            other = await super().get(order_id)
            other.set_status(OrderStatus.CONFIRMED, "Confirmed at the counter")
            await super().save(other)
        return order


def build_services(
    catalog: InMemoryCatalogStore, order_repo: OrderRepository
) -> tuple[CartService, CheckoutService, OrderService]:
    seed_catalog(catalog)
    cart_repo = CartRepository()
    return (
        CartService(catalog, cart_repo),
        CheckoutService(catalog, cart_repo, order_repo, RecordingPublisher()),
        OrderService(order_repo, catalog, RecordingPublisher()),
    )


# ============================================================================
# Queries
# ============================================================================


class TestGetOrder:
    @pytest.mark.asyncio
    async def test_customer_and_seller_can_read(
        self, cart_service: CartService, checkout_service: CheckoutService, order_service: OrderService
    ) -> None:
        order = await place_order(cart_service, checkout_service)

        assert (await order_service.get_order(str(order.id), CUSTOMER)).success
        assert (await order_service.get_order(str(order.id), SELLER)).success

    @pytest.mark.asyncio
    @pytest.mark.parametrize("actor", [OTHER_CUSTOMER, OTHER_SELLER])
    async def test_strangers_are_forbidden(
        self,
        cart_service: CartService,
        checkout_service: CheckoutService,
        order_service: OrderService,
        actor: Actor,
    ) -> None:
        order = await place_order(cart_service, checkout_service)

        result = await order_service.get_order(str(order.id), actor)
        assert result.error_code == "FORBIDDEN"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("order_id", ["not-a-uuid", "0b5e7a7e-3c55-4d3c-9a43-3f2d6c1e2b10"])
    async def test_unknown_order(self, order_service: OrderService, order_id: str) -> None:
        result = await order_service.get_order(order_id, CUSTOMER)
        assert result.error_code == "ORDER_NOT_FOUND"


class TestListOrders:
    @pytest.mark.asyncio
    async def test_customer_orders_newest_first(
        self, cart_service: CartService, checkout_service: CheckoutService, order_service: OrderService
    ) -> None:
        first = await place_order(cart_service, checkout_service, product_id="apples", quantity=1)
        second = await place_order(cart_service, checkout_service, product_id="milk", quantity=1)

        result = await order_service.list_orders_for_customer("cust-1")

        assert result.total == 2
        assert [o.id for o in result.orders] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_pagination(
        self, cart_service: CartService, checkout_service: CheckoutService, order_service: OrderService
    ) -> None:
        for _ in range(3):
            await place_order(cart_service, checkout_service, quantity=1)

        result = await order_service.list_orders_for_customer("cust-1", page=2, page_size=2)

        assert result.total == 3
        assert result.page == 2
        assert len(result.orders) == 1

    @pytest.mark.asyncio
    async def test_page_size_is_capped(self, catalog, order_repo) -> None:
        service = OrderService(order_repo, catalog, RecordingPublisher(), max_page_size=10)
        result = await service.list_orders_for_seller("fresh-mart", page_size=500)
        assert result.page_size == 10

    @pytest.mark.asyncio
    async def test_seller_orders_filtered_by_status(
        self, cart_service: CartService, checkout_service: CheckoutService, order_service: OrderService
    ) -> None:
        order = await place_order(cart_service, checkout_service)
        await place_order(cart_service, checkout_service, customer_id="cust-2")
        await order_service.set_order_status(str(order.id), "confirmed", actor=SELLER)

        confirmed = await order_service.list_orders_for_seller("fresh-mart", status="confirmed")
        pending = await order_service.list_orders_for_seller("fresh-mart", status="pending")

        assert [o.id for o in confirmed.orders] == [order.id]
        assert pending.total == 1

    @pytest.mark.asyncio
    async def test_unknown_status_filter(self, order_service: OrderService) -> None:
        result = await order_service.list_orders_for_customer("cust-1", status="shipped")
        assert result.error_code == "INVALID_STATUS"


# ============================================================================
# Status Transitions
# ============================================================================


class TestSetOrderStatus:
    @pytest.mark.asyncio
    async def test_seller_moves_order_along(
        self,
        cart_service: CartService,
        checkout_service: CheckoutService,
        order_service: OrderService,
        notifier: RecordingPublisher,
    ) -> None:
        order = await place_order(cart_service, checkout_service)

        result = await order_service.set_order_status(str(order.id), "preparing", "Packing", actor=SELLER)

        assert result.success
        assert result.order.status == OrderStatus.PREPARING
        assert result.order.timeline[-1].note == "Packing"
        assert notifier.types()[-1] == "order.status_changed"

    @pytest.mark.asyncio
    async def test_delivery_marks_cod_paid(
        self, cart_service: CartService, checkout_service: CheckoutService, order_service: OrderService
    ) -> None:
        order = await place_order(cart_service, checkout_service)

        result = await order_service.set_order_status(str(order.id), "delivered", actor=SELLER)

        assert result.order.payment.status == PaymentStatus.PAID
        assert result.order.delivery.delivered_at is not None

    @pytest.mark.asyncio
    async def test_unknown_status(
        self, cart_service: CartService, checkout_service: CheckoutService, order_service: OrderService
    ) -> None:
        order = await place_order(cart_service, checkout_service)
        result = await order_service.set_order_status(str(order.id), "teleported", actor=SELLER)
        assert result.error_code == "INVALID_STATUS"

    @pytest.mark.asyncio
    async def test_refund_needs_delivery(
        self, cart_service: CartService, checkout_service: CheckoutService, order_service: OrderService
    ) -> None:
        order = await place_order(cart_service, checkout_service)
        result = await order_service.set_order_status(str(order.id), "refunded", actor=SELLER)
        assert result.error_code == "INVALID_TRANSITION"

    @pytest.mark.asyncio
    async def test_customer_cannot_change_status(
        self, cart_service: CartService, checkout_service: CheckoutService, order_service: OrderService
    ) -> None:
        order = await place_order(cart_service, checkout_service)
        result = await order_service.set_order_status(str(order.id), "confirmed", actor=CUSTOMER)
        assert result.error_code == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_other_seller_cannot_change_status(
        self, cart_service: CartService, checkout_service: CheckoutService, order_service: OrderService
    ) -> None:
        order = await place_order(cart_service, checkout_service)
        result = await order_service.set_order_status(str(order.id), "confirmed", actor=OTHER_SELLER)
        assert result.error_code == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_setting_cancelled_restores_stock(
        self,
        cart_service: CartService,
        checkout_service: CheckoutService,
        order_service: OrderService,
        catalog: InMemoryCatalogStore,
    ) -> None:
        order = await place_order(cart_service, checkout_service, quantity=4)
        assert await stock_of(catalog, "apples") == 6

        result = await order_service.set_order_status(str(order.id), "cancelled", "Out of stock", actor=SELLER)

        assert result.order.status == OrderStatus.CANCELLED
        assert result.order.cancellation_reason == "Out of stock"
        assert await stock_of(catalog, "apples") == 10


# ============================================================================
# Cancellation
# ============================================================================


class TestCancelOrder:
    @pytest.mark.asyncio
    async def test_cancel_restores_stock_once(
        self,
        cart_service: CartService,
        checkout_service: CheckoutService,
        order_service: OrderService,
        catalog: InMemoryCatalogStore,
        notifier: RecordingPublisher,
    ) -> None:
        order = await place_order(cart_service, checkout_service, quantity=3)

        first = await order_service.cancel_order(str(order.id), actor=CUSTOMER)
        second = await order_service.cancel_order(str(order.id), actor=CUSTOMER)

        assert first.success
        assert first.order.cancellation_reason == "Cancelled by customer"
        assert second.error_code == "NOT_CANCELLABLE"
        assert await stock_of(catalog, "apples") == 10
        assert notifier.types().count("order.cancelled") == 1

    @pytest.mark.asyncio
    async def test_concurrent_cancels_restore_once(
        self,
        cart_service: CartService,
        checkout_service: CheckoutService,
        order_service: OrderService,
        catalog: InMemoryCatalogStore,
    ) -> None:
        order = await place_order(cart_service, checkout_service, quantity=3)

        results = await asyncio.gather(
            *(order_service.cancel_order(str(order.id), actor=CUSTOMER) for _ in range(3))
        )

        assert sum(r.success for r in results) == 1
        assert await stock_of(catalog, "apples") == 10

    @pytest.mark.asyncio
    async def test_cancel_restocks_sold_out_product(
        self,
        cart_service: CartService,
        checkout_service: CheckoutService,
        order_service: OrderService,
        catalog: InMemoryCatalogStore,
    ) -> None:
        order = await place_order(cart_service, checkout_service, product_id="bread", quantity=2)
        sold_out = await catalog.get_product(ProductId("bread"))
        assert sold_out.stock_quantity == 0

        await order_service.cancel_order(str(order.id), actor=CUSTOMER)

        product = await catalog.get_product(ProductId("bread"))
        assert product.stock_quantity == 2
        assert product.is_active

    @pytest.mark.asyncio
    async def test_delivered_order_cannot_cancel(
        self, cart_service: CartService, checkout_service: CheckoutService, order_service: OrderService
    ) -> None:
        order = await place_order(cart_service, checkout_service)
        await order_service.set_order_status(str(order.id), "delivered", actor=SELLER)

        result = await order_service.cancel_order(str(order.id), actor=CUSTOMER)
        assert result.error_code == "NOT_CANCELLABLE"

    @pytest.mark.asyncio
    async def test_stranger_cannot_cancel(
        self,
        cart_service: CartService,
        checkout_service: CheckoutService,
        order_service: OrderService,
        catalog: InMemoryCatalogStore,
    ) -> None:
        order = await place_order(cart_service, checkout_service)

        result = await order_service.cancel_order(str(order.id), actor=OTHER_CUSTOMER)

        assert result.error_code == "FORBIDDEN"
        assert await stock_of(catalog, "apples") == 8


class TestCancelCompensation:
    """A cancel that fails partway leaves stock and the order untouched."""

    @pytest.mark.asyncio
    async def test_failed_restore_takes_back_restored_units(self) -> None:
        catalog = RestockFailingCatalogStore("milk", CatalogUnavailableError("adjust_stock", "connection refused"))
        cart_service, checkout_service, order_service = build_services(catalog, OrderRepository())
        await cart_service.add_to_cart("cust-1", "apples", 2)
        order = await place_order(cart_service, checkout_service, product_id="milk", quantity=1)

        result = await order_service.cancel_order(str(order.id), actor=CUSTOMER)

        assert result.error_code == "CATALOG_UNAVAILABLE"
        assert await stock_of(catalog, "apples") == 8
        assert await stock_of(catalog, "milk") == 4
        stored = (await order_service.get_order(str(order.id), CUSTOMER)).order
        assert stored.status == OrderStatus.PENDING

        # Retrying once the catalog recovers restores everything once
        catalog.failing_product = ""
        assert (await order_service.cancel_order(str(order.id), actor=CUSTOMER)).success
        assert await stock_of(catalog, "apples") == 10
        assert await stock_of(catalog, "milk") == 5

    @pytest.mark.asyncio
    async def test_failed_save_takes_back_restored_units(self) -> None:
        catalog = InMemoryCatalogStore()
        order_repo = CancelFailingOrderRepository()
        cart_service, checkout_service, order_service = build_services(catalog, order_repo)
        order = await place_order(cart_service, checkout_service, quantity=3)

        result = await order_service.cancel_order(str(order.id), actor=CUSTOMER)

        assert result.error_code == "ORDER_UPDATE_FAILED"
        assert await stock_of(catalog, "apples") == 7
        stored = await order_repo.get(str(order.id))
        assert stored.status == OrderStatus.PENDING

    @pytest.mark.asyncio
    async def test_deleted_product_does_not_block_cancel(self) -> None:
        catalog = RestockFailingCatalogStore("milk", ProductNotFoundError("milk"))
        cart_service, checkout_service, order_service = build_services(catalog, OrderRepository())
        await cart_service.add_to_cart("cust-1", "apples", 2)
        order = await place_order(cart_service, checkout_service, product_id="milk", quantity=1)

        result = await order_service.cancel_order(str(order.id), "Shop closed early", actor=SELLER)

        assert result.success
        assert result.order.status == OrderStatus.CANCELLED
        assert await stock_of(catalog, "apples") == 10
        assert await stock_of(catalog, "milk") == 4


# ============================================================================
# Rating
# ============================================================================


class TestRateOrder:
    @pytest.mark.asyncio
    async def test_rate_delivered_order(
        self,
        cart_service: CartService,
        checkout_service: CheckoutService,
        order_service: OrderService,
        catalog: InMemoryCatalogStore,
    ) -> None:
        order = await place_order(cart_service, checkout_service)
        await order_service.set_order_status(str(order.id), "delivered", actor=SELLER)

        result = await order_service.rate_order(str(order.id), 5, "Crisp apples", actor=CUSTOMER)

        assert result.success
        assert result.order.rating.value == 5
        assert result.seller_rating == SellerRating(average=Decimal("5.00"), count=1)
        seller = await catalog.get_seller(SellerId("fresh-mart"))
        assert seller.rating.count == 1

    @pytest.mark.asyncio
    async def test_second_rating_rejected_and_seller_unchanged(
        self,
        cart_service: CartService,
        checkout_service: CheckoutService,
        order_service: OrderService,
        catalog: InMemoryCatalogStore,
    ) -> None:
        order = await place_order(cart_service, checkout_service)
        await order_service.set_order_status(str(order.id), "delivered", actor=SELLER)
        await order_service.rate_order(str(order.id), 5, actor=CUSTOMER)

        result = await order_service.rate_order(str(order.id), 1, actor=CUSTOMER)

        assert result.error_code == "ALREADY_RATED"
        seller = await catalog.get_seller(SellerId("fresh-mart"))
        assert seller.rating == SellerRating(average=Decimal("5.00"), count=1)

    @pytest.mark.asyncio
    async def test_average_over_several_orders(
        self, cart_service: CartService, checkout_service: CheckoutService, order_service: OrderService
    ) -> None:
        rating = None
        for value in (5, 4, 4):
            order = await place_order(cart_service, checkout_service, quantity=1)
            await order_service.set_order_status(str(order.id), "delivered", actor=SELLER)
            rating = (await order_service.rate_order(str(order.id), value, actor=CUSTOMER)).seller_rating

        assert rating == SellerRating(average=Decimal("4.33"), count=3)

    @pytest.mark.asyncio
    async def test_rate_before_delivery(
        self, cart_service: CartService, checkout_service: CheckoutService, order_service: OrderService
    ) -> None:
        order = await place_order(cart_service, checkout_service)
        result = await order_service.rate_order(str(order.id), 4, actor=CUSTOMER)
        assert result.error_code == "NOT_DELIVERED_YET"

    @pytest.mark.asyncio
    async def test_rating_out_of_range(
        self, cart_service: CartService, checkout_service: CheckoutService, order_service: OrderService
    ) -> None:
        order = await place_order(cart_service, checkout_service)
        await order_service.set_order_status(str(order.id), "delivered", actor=SELLER)
        result = await order_service.rate_order(str(order.id), 6, actor=CUSTOMER)
        assert result.error_code == "INVALID_RATING"

    @pytest.mark.asyncio
    async def test_seller_cannot_rate(
        self, cart_service: CartService, checkout_service: CheckoutService, order_service: OrderService
    ) -> None:
        order = await place_order(cart_service, checkout_service)
        await order_service.set_order_status(str(order.id), "delivered", actor=SELLER)
        result = await order_service.rate_order(str(order.id), 5, actor=SELLER)
        assert result.error_code == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_failed_seller_update_leaves_order_unrated(
        self,
        cart_service: CartService,
        checkout_service: CheckoutService,
        order_repo,
        catalog: InMemoryCatalogStore,
    ) -> None:
        class BrokenRatingCatalog:
            def __getattr__(self, name):
                return getattr(catalog, name)

            async def record_rating(self, seller_id, value):
                raise RuntimeError("seller table locked")

        service = OrderService(order_repo, BrokenRatingCatalog(), RecordingPublisher())
        order = await place_order(cart_service, checkout_service)
        await service.set_order_status(str(order.id), "delivered", actor=SELLER)

        result = await service.rate_order(str(order.id), 5, actor=CUSTOMER)

        assert result.error_code == "ORDER_UPDATE_FAILED"
        stored = await order_repo.get(str(order.id))
        assert stored.rating is None


# ============================================================================
# Optimistic Locking
# ============================================================================


class TestOrderVersioning:
    @pytest.mark.asyncio
    async def test_stale_copy_is_rejected(
        self, cart_service: CartService, checkout_service: CheckoutService, order_repo: OrderRepository
    ) -> None:
        order = await place_order(cart_service, checkout_service)
        first = await order_repo.get(str(order.id))
        second = await order_repo.get(str(order.id))

        first.set_status(OrderStatus.CONFIRMED)
        await order_repo.save(first)
        second.set_status(OrderStatus.PREPARING)

        with pytest.raises(ConcurrentModificationError) as exc_info:
            await order_repo.save(second)

        assert exc_info.value.error_code == "CONCURRENT_MODIFICATION"
        assert exc_info.value.details["stored_version"] == first.version
        assert (await order_repo.get(str(order.id))).status == OrderStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_saved_copy_can_be_saved_again(
        self, cart_service: CartService, checkout_service: CheckoutService, order_repo: OrderRepository
    ) -> None:
        order = await place_order(cart_service, checkout_service)
        loaded = await order_repo.get(str(order.id))
        assert loaded.persisted_version == loaded.version

        for target in (OrderStatus.CONFIRMED, OrderStatus.PREPARING):
            loaded.set_status(target)
            await order_repo.save(loaded)

        stored = await order_repo.get(str(order.id))
        assert stored.status == OrderStatus.PREPARING
        assert stored.version == loaded.version

    @pytest.mark.asyncio
    async def test_status_change_on_stale_read_is_reported(self) -> None:
        order_repo = RacingOrderRepository()
        cart_service, checkout_service, order_service = build_services(InMemoryCatalogStore(), order_repo)
        order = await place_order(cart_service, checkout_service)

        order_repo.race = True
        result = await order_service.set_order_status(str(order.id), "preparing", actor=SELLER)

        assert result.error_code == "CONCURRENT_MODIFICATION"
        stored = await order_repo.get(str(order.id))
        assert stored.status == OrderStatus.CONFIRMED
        assert [e.note for e in stored.timeline][-1] == "Confirmed at the counter"

    @pytest.mark.asyncio
    async def test_cancel_on_stale_read_keeps_stock_reserved(self) -> None:
        order_repo = RacingOrderRepository()
        catalog = InMemoryCatalogStore()
        cart_service, checkout_service, order_service = build_services(catalog, order_repo)
        order = await place_order(cart_service, checkout_service, quantity=3)

        order_repo.race = True
        result = await order_service.cancel_order(str(order.id), actor=CUSTOMER)

        assert result.error_code == "CONCURRENT_MODIFICATION"
        assert await stock_of(catalog, "apples") == 7
        assert (await order_repo.get(str(order.id))).status == OrderStatus.CONFIRMED
