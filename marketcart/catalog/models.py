"""SQLAlchemy models for the catalog.

Prices and fees are stored in minor units. The seller rating average
is kept with two decimals next to its count so that one UPDATE can
fold a new rating in.
"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from marketcart.infrastructure.database import Base


class SellerModel(Base):
    """Seller (store) row.

    Attributes:
        id: Seller identifier.
        name: Store name.
        is_active: Whether the store accepts orders.
        delivery_fee_cents: Flat home delivery fee.
        rating_average: Running rating average, two decimals.
        rating_count: Number of ratings folded in.
        total_orders: Orders placed with the store.
        total_revenue_cents: Sum of order totals.
    """

    __tablename__ = "sellers"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    delivery_fee_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rating_average: Mapped[Decimal] = mapped_column(Numeric(4, 2), nullable=False, default=Decimal("0"))
    rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_orders: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_revenue_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Seller {self.id}: {self.name}>"


class ProductModel(Base):
    """Product row.

    Attributes:
        id: Product identifier.
        seller_id: Owning seller.
        name: Display name.
        unit: Selling unit.
        image_url: Primary image.
        selling_price_cents: Current price per unit.
        stock_quantity: Units on hand.
        track_stock: Whether stock limits apply.
        status: active, inactive, out_of_stock or discontinued.
    """

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    seller_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="piece")
    image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    selling_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    track_stock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active", index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Product {self.id}: {self.name[:50]}>"
