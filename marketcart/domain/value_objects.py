"""Value Objects for the domain layer.

Value objects are immutable objects that are defined by their attributes
rather than identity. They are interchangeable when their values are equal.
"""

import random
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Self
from uuid import UUID, uuid4

from marketcart.domain.base import ValueObject, utc_now
from marketcart.domain.exceptions import InvalidIdentifierError, InvalidRatingError, NegativeMoneyError
from marketcart.domain.state_machines import OrderStatus, PaymentStatus


# ============================================================================
# Typed Identifiers
# ============================================================================


@dataclass(frozen=True)
class _StringId(ValueObject):
    """String-based identifier issued by an external system."""

    value: str

    def __str__(self) -> str:
        return self.value

    def __post_init__(self) -> None:
        """Validate identifier format."""
        if not self.value or not self.value.strip():
            raise InvalidIdentifierError(type(self).__name__, self.value)


@dataclass(frozen=True)
class CustomerId(_StringId):
    """Customer identifier, resolved by the identity layer."""


@dataclass(frozen=True)
class SellerId(_StringId):
    """Seller (store) identifier."""


@dataclass(frozen=True)
class ProductId(_StringId):
    """Catalog product identifier."""


@dataclass(frozen=True)
class OrderId(ValueObject):
    """Strongly-typed order identifier."""

    value: UUID

    @classmethod
    def generate(cls) -> Self:
        """Generate a new order ID.

        Returns:
            New OrderId with random UUID.
        """
        return cls(value=uuid4())

    @classmethod
    def from_string(cls, value: str) -> Self:
        """Create OrderId from string representation.

        Args:
            value: String UUID representation.

        Returns:
            OrderId instance.

        Raises:
            ValueError: If the value is not a UUID.
        """
        return cls(value=UUID(value))

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class OrderNumber(ValueObject):
    """Human-facing order number, e.g. ``MLM482913057``.

    The prefix is followed by the last six digits of the millisecond
    clock and three random digits. Collisions are possible in theory;
    the order repository rejects duplicates and checkout draws again.
    """

    value: str

    @classmethod
    def generate(
        cls,
        prefix: str = "MLM",
        now_ms: int | None = None,
        rng: random.Random | None = None,
    ) -> Self:
        """Draw a new order number.

        Args:
            prefix: Brand prefix.
            now_ms: Clock override in milliseconds, for tests.
            rng: Random source override, for tests.

        Returns:
            New OrderNumber.
        """
        millis = now_ms if now_ms is not None else time.time_ns() // 1_000_000
        suffix = (rng or random).randint(0, 999)
        return cls(value=f"{prefix}{str(millis)[-6:]}{suffix:03d}")

    def __str__(self) -> str:
        return self.value


# ============================================================================
# Money Value Object
# ============================================================================


@dataclass(frozen=True)
class Money(ValueObject):
    """Monetary amount in the smallest currency unit.

    A single shop-wide currency is assumed, so only the amount is kept.

    Attributes:
        amount_cents: Amount in minor units (paise, cents).
    """

    amount_cents: int

    def __post_init__(self) -> None:
        """Validate money constraints."""
        if self.amount_cents < 0:
            raise NegativeMoneyError(self.amount_cents)

    @classmethod
    def zero(cls) -> Self:
        """Create zero amount money.

        Returns:
            Money with zero amount.
        """
        return cls(amount_cents=0)

    @classmethod
    def from_decimal(cls, amount: Decimal) -> Self:
        """Create money from decimal amount.

        Args:
            amount: Decimal amount in major units.

        Returns:
            Money instance.
        """
        cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return cls(amount_cents=cents)

    def to_decimal(self) -> Decimal:
        """Convert to decimal amount in major units."""
        return Decimal(self.amount_cents) / 100

    def __add__(self, other: "Money") -> "Money":
        return Money(amount_cents=self.amount_cents + other.amount_cents)

    def __sub__(self, other: "Money") -> "Money":
        """Subtract money amounts.

        Raises:
            NegativeMoneyError: If result would be negative.
        """
        return Money(amount_cents=self.amount_cents - other.amount_cents)

    def __mul__(self, quantity: int) -> "Money":
        return Money(amount_cents=self.amount_cents * quantity)

    def __rmul__(self, quantity: int) -> "Money":
        return self.__mul__(quantity)

    def __str__(self) -> str:
        return f"{self.to_decimal():.2f}"

    def is_zero(self) -> bool:
        """Check if amount is zero."""
        return self.amount_cents == 0


# ============================================================================
# Order Value Objects
# ============================================================================


class PaymentMethod(str, Enum):
    """How the customer pays. Only the status is tracked, never a gateway."""

    COD = "cod"
    ONLINE = "online"


class DeliveryMode(str, Enum):
    """How the order reaches the customer."""

    PICKUP = "pickup"
    DELIVERY = "delivery"


@dataclass(frozen=True)
class Coordinates(ValueObject):
    """Geographic point of a delivery address."""

    latitude: float
    longitude: float


@dataclass(frozen=True)
class DeliveryAddress(ValueObject):
    """Home delivery address.

    Attributes:
        street: Street and house number.
        city: City.
        state: State or province.
        pincode: Postal code.
        coordinates: Optional geo point for the rider.
    """

    street: str
    city: str
    state: str
    pincode: str
    coordinates: Coordinates | None = None

    def __post_init__(self) -> None:
        """Validate that the address is usable for delivery."""
        for name in ("street", "city", "pincode"):
            if not getattr(self, name).strip():
                raise ValueError(f"Delivery address {name} cannot be empty")


@dataclass(frozen=True)
class ProductSnapshot(ValueObject):
    """Product details frozen at order time.

    Later catalog edits never change an existing order line.
    """

    name: str
    price: Money
    unit: str = "piece"
    image_url: str | None = None


@dataclass(frozen=True)
class Pricing(ValueObject):
    """Order price breakdown. ``total`` is always derived."""

    subtotal: Money
    delivery_fee: Money
    tax: Money = Money(0)
    discount: Money = Money(0)

    @property
    def total(self) -> Money:
        """subtotal + delivery_fee + tax - discount."""
        return self.subtotal + self.delivery_fee + self.tax - self.discount


@dataclass(frozen=True)
class Payment(ValueObject):
    """Payment tracking for an order."""

    method: PaymentMethod = PaymentMethod.COD
    status: PaymentStatus = PaymentStatus.PENDING
    paid_at: datetime | None = None


@dataclass(frozen=True)
class Delivery(ValueObject):
    """Delivery details for an order."""

    mode: DeliveryMode
    fee: Money
    address: DeliveryAddress | None = None
    delivered_at: datetime | None = None


@dataclass(frozen=True)
class TimelineEntry(ValueObject):
    """One step of an order's status history."""

    status: OrderStatus
    timestamp: datetime
    note: str = ""


@dataclass(frozen=True)
class Rating(ValueObject):
    """Customer rating of a delivered order."""

    value: int
    review: str = ""
    rated_at: datetime | None = None

    def __post_init__(self) -> None:
        """Validate rating range."""
        if not isinstance(self.value, int) or not 1 <= self.value <= 5:
            raise InvalidRatingError(self.value)
        if self.rated_at is None:
            object.__setattr__(self, "rated_at", utc_now())


@dataclass(frozen=True)
class SellerRating(ValueObject):
    """Running average of all ratings a seller received.

    Attributes:
        average: Mean rating rounded to two decimals.
        count: Number of ratings folded in.
    """

    average: Decimal = Decimal("0")
    count: int = 0

    def fold(self, value: int) -> "SellerRating":
        """Fold one more rating into the average.

        Args:
            value: New rating, 1..5.

        Returns:
            New SellerRating with the updated average and count.
        """
        total = self.average * self.count + value
        count = self.count + 1
        average = (total / count).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        return SellerRating(average=average, count=count)


@dataclass(frozen=True)
class SellerStats(ValueObject):
    """Aggregate order statistics of a seller."""

    total_orders: int = 0
    total_revenue: Money = Money(0)


# ============================================================================
# Actor
# ============================================================================


class ActorRole(str, Enum):
    """Role of the authenticated caller."""

    CUSTOMER = "customer"
    SELLER = "seller"


@dataclass(frozen=True)
class Actor(ValueObject):
    """Caller resolved by the identity layer.

    Attributes:
        id: Customer or seller id, depending on role.
        role: Whether the caller acts as a customer or a seller.
    """

    id: str
    role: ActorRole

    @property
    def is_customer(self) -> bool:
        return self.role == ActorRole.CUSTOMER

    @property
    def is_seller(self) -> bool:
        return self.role == ActorRole.SELLER


class UnavailableReason(str, Enum):
    """Why a cart line cannot be ordered right now."""

    SELLER_INACTIVE = "seller_inactive"
    PRODUCT_NOT_FOUND = "product_not_found"
    PRODUCT_INACTIVE = "product_inactive"
    INSUFFICIENT_STOCK = "insufficient_stock"
