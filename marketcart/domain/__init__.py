"""Domain layer - Entities, value objects, state machines, domain events.

This module exports the core domain building blocks:

- **Entities**: Objects with identity (Product, Seller, Cart, Order)
- **Value Objects**: Immutable objects compared by value (Money, Pricing, typed IDs)
- **State Machines**: Order lifecycle and payment/product statuses
- **Domain Events**: Represent significant domain occurrences
- **Exceptions**: Domain-specific errors and invariant violations

Example usage:
    from marketcart.domain import Cart, CustomerId, Money, Product, ProductId, SellerId

    cart = Cart(id=CustomerId("cust-1"))
    apples = Product(
        id=ProductId("apples"),
        seller_id=SellerId("fresh-mart"),
        name="Apples",
        selling_price=Money(12000),
        stock_quantity=10,
    )
    cart.add_line(apples, quantity=2)
    print(cart.total_amount)  # 240.00
"""

from marketcart.domain.base import AggregateRoot, DomainEvent, Entity, ValueObject
from marketcart.domain.entities import (
    Cart,
    CartLine,
    CartSnapshot,
    Order,
    OrderLine,
    Product,
    Seller,
)
from marketcart.domain.events import (
    CartCleared,
    CartLineAdded,
    CartLineRemoved,
    CartLineUpdated,
    OrderCancelled,
    OrderCreated,
    OrderRated,
    OrderStatusChanged,
)
from marketcart.domain.exceptions import (
    AccessDeniedError,
    AlreadyRatedError,
    CartLineNotFoundError,
    CatalogUnavailableError,
    CheckoutFailedError,
    ConcurrentModificationError,
    DomainError,
    DuplicateOrderNumberError,
    EmptyCartError,
    InsufficientStockError,
    InvalidDeliveryAddressError,
    InvalidIdentifierError,
    InvalidOrderStatusError,
    InvalidQuantityError,
    InvalidRatingError,
    InvalidStateTransitionError,
    NoValidItemsError,
    NotDeliveredYetError,
    OrderNotCancellableError,
    OrderNotFoundError,
    ProductNotFoundError,
    ProductUnavailableError,
    SellerNotFoundError,
)
from marketcart.domain.state_machines import OrderStatus, PaymentStatus, ProductStatus
from marketcart.domain.value_objects import (
    Actor,
    ActorRole,
    CustomerId,
    DeliveryAddress,
    DeliveryMode,
    Money,
    OrderId,
    OrderNumber,
    PaymentMethod,
    Pricing,
    ProductId,
    Rating,
    SellerId,
    SellerRating,
)

__all__ = [
    # Base
    "AggregateRoot",
    "DomainEvent",
    "Entity",
    "ValueObject",
    # Entities
    "Cart",
    "CartLine",
    "CartSnapshot",
    "Order",
    "OrderLine",
    "Product",
    "Seller",
    # Events
    "CartCleared",
    "CartLineAdded",
    "CartLineRemoved",
    "CartLineUpdated",
    "OrderCancelled",
    "OrderCreated",
    "OrderRated",
    "OrderStatusChanged",
    # Exceptions
    "AccessDeniedError",
    "AlreadyRatedError",
    "CartLineNotFoundError",
    "CatalogUnavailableError",
    "CheckoutFailedError",
    "ConcurrentModificationError",
    "DomainError",
    "DuplicateOrderNumberError",
    "EmptyCartError",
    "InsufficientStockError",
    "InvalidDeliveryAddressError",
    "InvalidIdentifierError",
    "InvalidOrderStatusError",
    "InvalidQuantityError",
    "InvalidRatingError",
    "InvalidStateTransitionError",
    "NoValidItemsError",
    "NotDeliveredYetError",
    "OrderNotCancellableError",
    "OrderNotFoundError",
    "ProductNotFoundError",
    "ProductUnavailableError",
    "SellerNotFoundError",
    # State machines
    "OrderStatus",
    "PaymentStatus",
    "ProductStatus",
    # Value objects
    "Actor",
    "ActorRole",
    "CustomerId",
    "DeliveryAddress",
    "DeliveryMode",
    "Money",
    "OrderId",
    "OrderNumber",
    "PaymentMethod",
    "Pricing",
    "ProductId",
    "Rating",
    "SellerId",
    "SellerRating",
]
