"""Tests for the in-memory catalog store."""

import asyncio
from decimal import Decimal

import pytest

from marketcart.catalog.store import InMemoryCatalogStore
from marketcart.domain.exceptions import InsufficientStockError, ProductNotFoundError, SellerNotFoundError
from marketcart.domain.state_machines import ProductStatus
from marketcart.domain.value_objects import DeliveryMode, Money, ProductId, SellerId


@pytest.mark.asyncio
async def test_reads_return_copies(catalog: InMemoryCatalogStore) -> None:
    product = await catalog.get_product(ProductId("apples"))
    product.stock_quantity = 0

    fresh = await catalog.get_product(ProductId("apples"))
    assert fresh.stock_quantity == 10


@pytest.mark.asyncio
async def test_adjust_stock(catalog: InMemoryCatalogStore) -> None:
    assert await catalog.adjust_stock(ProductId("milk"), -3) == 2
    assert await catalog.adjust_stock(ProductId("milk"), 1) == 3


@pytest.mark.asyncio
async def test_adjust_stock_refuses_overdraw(catalog: InMemoryCatalogStore) -> None:
    with pytest.raises(InsufficientStockError):
        await catalog.adjust_stock(ProductId("bread"), -3)
    product = await catalog.get_product(ProductId("bread"))
    assert product.stock_quantity == 2


@pytest.mark.asyncio
async def test_adjust_stock_unknown_product(catalog: InMemoryCatalogStore) -> None:
    with pytest.raises(ProductNotFoundError):
        await catalog.adjust_stock(ProductId("durian"), -1)


@pytest.mark.asyncio
async def test_concurrent_decrements_never_oversell(catalog: InMemoryCatalogStore) -> None:
    results = await asyncio.gather(
        *(catalog.adjust_stock(ProductId("milk"), -1) for _ in range(8)),
        return_exceptions=True,
    )

    assert sum(1 for r in results if isinstance(r, InsufficientStockError)) == 3
    product = await catalog.get_product(ProductId("milk"))
    assert product.stock_quantity == 0
    assert product.status == ProductStatus.OUT_OF_STOCK


@pytest.mark.asyncio
async def test_seller_lookups(catalog: InMemoryCatalogStore) -> None:
    assert await catalog.is_seller_active(SellerId("fresh-mart"))
    assert not await catalog.is_seller_active(SellerId("closed-store"))
    assert not await catalog.is_seller_active(SellerId("nobody"))
    assert await catalog.get_delivery_fee(SellerId("fresh-mart")) == Money(4000)
    assert await catalog.get_delivery_fee(SellerId("fresh-mart"), DeliveryMode.PICKUP) == Money.zero()


@pytest.mark.asyncio
async def test_delivery_fee_unknown_seller(catalog: InMemoryCatalogStore) -> None:
    with pytest.raises(SellerNotFoundError):
        await catalog.get_delivery_fee(SellerId("nobody"))


@pytest.mark.asyncio
async def test_record_and_revert_order(catalog: InMemoryCatalogStore) -> None:
    await catalog.record_order(SellerId("fresh-mart"), Money(12000))
    stats = await catalog.record_order(SellerId("fresh-mart"), Money(3000))
    assert stats.total_orders == 2
    assert stats.total_revenue == Money(15000)

    stats = await catalog.revert_order(SellerId("fresh-mart"), Money(3000))
    assert stats.total_orders == 1
    assert stats.total_revenue == Money(12000)


@pytest.mark.asyncio
async def test_concurrent_ratings_are_all_counted(catalog: InMemoryCatalogStore) -> None:
    await asyncio.gather(*(catalog.record_rating(SellerId("daily-needs"), v) for v in (5, 4, 3, 4)))

    seller = await catalog.get_seller(SellerId("daily-needs"))
    assert seller.rating.count == 4
    assert seller.rating.average == Decimal("4.00")
