"""SQL-backed catalog store.

Every update is a single conditional or arithmetic UPDATE so the
database, not the application, serializes concurrent writers to the
same row. Connectivity failures surface as ``CatalogUnavailableError``
and are never retried here.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from decimal import Decimal

import structlog
from sqlalchemy import and_, case, func, literal, or_, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketcart.catalog.models import ProductModel, SellerModel
from marketcart.catalog.store import CatalogStore
from marketcart.domain.entities import Product, Seller
from marketcart.domain.exceptions import (
    CatalogUnavailableError,
    InsufficientStockError,
    ProductNotFoundError,
    SellerNotFoundError,
)
from marketcart.domain.state_machines import ProductStatus
from marketcart.domain.value_objects import (
    Money,
    ProductId,
    SellerId,
    SellerRating,
    SellerStats,
)

logger = structlog.get_logger()


def _to_product(row: ProductModel) -> Product:
    return Product(
        id=ProductId(row.id),
        seller_id=SellerId(row.seller_id),
        name=row.name,
        selling_price=Money(row.selling_price_cents),
        stock_quantity=row.stock_quantity,
        track_stock=row.track_stock,
        status=ProductStatus(row.status),
        unit=row.unit,
        image_url=row.image_url,
    )


def _to_seller(row: SellerModel) -> Seller:
    return Seller(
        id=SellerId(row.id),
        name=row.name,
        is_active=row.is_active,
        delivery_fee=Money(row.delivery_fee_cents),
        rating=SellerRating(
            average=Decimal(row.rating_average).quantize(Decimal("0.01")),
            count=row.rating_count,
        ),
        stats=SellerStats(
            total_orders=row.total_orders,
            total_revenue=Money(row.total_revenue_cents),
        ),
    )


class SqlCatalogStore(CatalogStore):
    """Catalog store on SQLAlchemy async sessions.

    Example usage:
        engine = create_engine("sqlite+aiosqlite:///./marketcart.db")
        await create_tables(engine)
        store = SqlCatalogStore(create_session_factory(engine))
        await store.adjust_stock(ProductId("apples"), -2)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize store with a session factory.

        Args:
            session_factory: Factory producing async sessions.
        """
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Open a session and transaction, translating driver failures."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except DBAPIError as e:
            logger.error("Catalog backend error", operation=operation, error=str(e))
            raise CatalogUnavailableError(operation, str(e.orig or e)) from e

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------

    async def add_product(self, product: Product) -> Product:
        """Insert or replace a product."""
        async with self._transaction("add_product") as session:
            await session.merge(
                ProductModel(
                    id=str(product.id),
                    seller_id=str(product.seller_id),
                    name=product.name,
                    unit=product.unit,
                    image_url=product.image_url,
                    selling_price_cents=product.selling_price.amount_cents,
                    stock_quantity=product.stock_quantity,
                    track_stock=product.track_stock,
                    status=product.status.value,
                )
            )
        return product

    async def add_seller(self, seller: Seller) -> Seller:
        """Insert or replace a seller."""
        async with self._transaction("add_seller") as session:
            await session.merge(
                SellerModel(
                    id=str(seller.id),
                    name=seller.name,
                    is_active=seller.is_active,
                    delivery_fee_cents=seller.delivery_fee.amount_cents,
                    rating_average=seller.rating.average,
                    rating_count=seller.rating.count,
                    total_orders=seller.stats.total_orders,
                    total_revenue_cents=seller.stats.total_revenue.amount_cents,
                )
            )
        return seller

    # -------------------------------------------------------------------------
    # Products
    # -------------------------------------------------------------------------

    async def get_product(self, product_id: ProductId) -> Product | None:
        async with self._transaction("get_product") as session:
            row = await session.get(ProductModel, str(product_id))
            return _to_product(row) if row else None

    async def adjust_stock(self, product_id: ProductId, delta: int) -> int:
        new_quantity = ProductModel.stock_quantity + delta
        stmt = (
            update(ProductModel)
            .where(
                and_(
                    ProductModel.id == str(product_id),
                    or_(ProductModel.track_stock.is_(False), new_quantity >= 0),
                )
            )
            .values(
                stock_quantity=case(
                    (ProductModel.track_stock, new_quantity),
                    else_=ProductModel.stock_quantity,
                ),
                status=case(
                    (
                        and_(
                            ProductModel.track_stock,
                            new_quantity == 0,
                            ProductModel.status == ProductStatus.ACTIVE.value,
                        ),
                        literal(ProductStatus.OUT_OF_STOCK.value),
                    ),
                    (
                        and_(
                            ProductModel.track_stock,
                            new_quantity > 0,
                            ProductModel.status == ProductStatus.OUT_OF_STOCK.value,
                        ),
                        literal(ProductStatus.ACTIVE.value),
                    ),
                    else_=ProductModel.status,
                ),
            )
            .execution_options(synchronize_session=False)
        )

        async with self._transaction("adjust_stock") as session:
            result = await session.execute(stmt)
            row = await session.get(ProductModel, str(product_id), populate_existing=True)
            if row is None:
                raise ProductNotFoundError(str(product_id))
            if result.rowcount == 0:
                raise InsufficientStockError(str(product_id), -delta, row.stock_quantity)
            stock_quantity = row.stock_quantity

        logger.debug(
            "Stock adjusted",
            product_id=str(product_id),
            delta=delta,
            stock_quantity=stock_quantity,
        )
        return stock_quantity

    # -------------------------------------------------------------------------
    # Sellers
    # -------------------------------------------------------------------------

    async def get_seller(self, seller_id: SellerId) -> Seller | None:
        async with self._transaction("get_seller") as session:
            row = await session.get(SellerModel, str(seller_id))
            return _to_seller(row) if row else None

    async def _update_seller(self, operation: str, seller_id: SellerId, **values) -> Seller:
        stmt = (
            update(SellerModel)
            .where(SellerModel.id == str(seller_id))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._transaction(operation) as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                raise SellerNotFoundError(str(seller_id))
            row = await session.get(SellerModel, str(seller_id), populate_existing=True)
            return _to_seller(row)

    async def record_order(self, seller_id: SellerId, revenue: Money) -> SellerStats:
        seller = await self._update_seller(
            "record_order",
            seller_id,
            total_orders=SellerModel.total_orders + 1,
            total_revenue_cents=SellerModel.total_revenue_cents + revenue.amount_cents,
        )
        return seller.stats

    async def revert_order(self, seller_id: SellerId, revenue: Money) -> SellerStats:
        seller = await self._update_seller(
            "revert_order",
            seller_id,
            total_orders=case((SellerModel.total_orders > 0, SellerModel.total_orders - 1), else_=0),
            total_revenue_cents=case(
                (
                    SellerModel.total_revenue_cents >= revenue.amount_cents,
                    SellerModel.total_revenue_cents - revenue.amount_cents,
                ),
                else_=0,
            ),
        )
        return seller.stats

    async def record_rating(self, seller_id: SellerId, value: int) -> SellerRating:
        # Both SET expressions read the pre-update row.
        folded = func.round(
            (SellerModel.rating_average * SellerModel.rating_count + value) / (SellerModel.rating_count + 1.0),
            2,
        )
        seller = await self._update_seller(
            "record_rating",
            seller_id,
            rating_average=folded,
            rating_count=SellerModel.rating_count + 1,
        )
        logger.info(
            "Seller rating updated",
            seller_id=str(seller_id),
            average=str(seller.rating.average),
            count=seller.rating.count,
        )
        return seller.rating
