"""Domain events for MarketCart.

Domain events represent significant occurrences in the domain.
They are used for:
- Notifying sellers and customers through the notification publisher
- Structured audit logging of cart and order changes
"""

from dataclasses import dataclass
from typing import Any, ClassVar

from marketcart.domain.base import DomainEvent


# ============================================================================
# Cart Events
# ============================================================================


@dataclass(frozen=True)
class CartLineAdded(DomainEvent):
    """Event raised when a product is added to a cart."""

    event_type: ClassVar[str] = "cart.line_added"

    customer_id: str = ""
    product_id: str = ""
    seller_id: str = ""
    quantity: int = 0
    line_quantity: int = 0
    unit_price_cents: int = 0

    def _payload(self) -> dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "seller_id": self.seller_id,
            "quantity": self.quantity,
            "line_quantity": self.line_quantity,
            "unit_price_cents": self.unit_price_cents,
        }


@dataclass(frozen=True)
class CartLineUpdated(DomainEvent):
    """Event raised when a line's quantity is replaced."""

    event_type: ClassVar[str] = "cart.line_updated"

    customer_id: str = ""
    product_id: str = ""
    old_quantity: int = 0
    new_quantity: int = 0

    def _payload(self) -> dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "old_quantity": self.old_quantity,
            "new_quantity": self.new_quantity,
        }


@dataclass(frozen=True)
class CartLineRemoved(DomainEvent):
    """Event raised when a line leaves the cart."""

    event_type: ClassVar[str] = "cart.line_removed"

    customer_id: str = ""
    product_id: str = ""

    def _payload(self) -> dict[str, Any]:
        return {"customer_id": self.customer_id, "product_id": self.product_id}


@dataclass(frozen=True)
class CartCleared(DomainEvent):
    """Event raised when all lines are removed at once."""

    event_type: ClassVar[str] = "cart.cleared"

    customer_id: str = ""
    lines_removed: int = 0

    def _payload(self) -> dict[str, Any]:
        return {"customer_id": self.customer_id, "lines_removed": self.lines_removed}


# ============================================================================
# Order Events
# ============================================================================


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Event raised when checkout places an order for one seller."""

    event_type: ClassVar[str] = "order.created"

    order_number: str = ""
    customer_id: str = ""
    seller_id: str = ""
    line_count: int = 0
    total_cents: int = 0
    delivery_mode: str = ""
    payment_method: str = ""

    def _payload(self) -> dict[str, Any]:
        return {
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "seller_id": self.seller_id,
            "line_count": self.line_count,
            "total_cents": self.total_cents,
            "delivery_mode": self.delivery_mode,
            "payment_method": self.payment_method,
        }


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Event raised on every status transition except cancellation."""

    event_type: ClassVar[str] = "order.status_changed"

    order_number: str = ""
    seller_id: str = ""
    customer_id: str = ""
    old_status: str = ""
    new_status: str = ""
    note: str = ""

    def _payload(self) -> dict[str, Any]:
        return {
            "order_number": self.order_number,
            "seller_id": self.seller_id,
            "customer_id": self.customer_id,
            "old_status": self.old_status,
            "new_status": self.new_status,
            "note": self.note,
        }


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Event raised when an order is cancelled and its stock released."""

    event_type: ClassVar[str] = "order.cancelled"

    order_number: str = ""
    seller_id: str = ""
    customer_id: str = ""
    previous_status: str = ""
    reason: str = ""

    def _payload(self) -> dict[str, Any]:
        return {
            "order_number": self.order_number,
            "seller_id": self.seller_id,
            "customer_id": self.customer_id,
            "previous_status": self.previous_status,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class OrderRated(DomainEvent):
    """Event raised when the customer rates a delivered order."""

    event_type: ClassVar[str] = "order.rated"

    order_number: str = ""
    seller_id: str = ""
    value: int = 0
    review: str = ""

    def _payload(self) -> dict[str, Any]:
        return {
            "order_number": self.order_number,
            "seller_id": self.seller_id,
            "value": self.value,
            "review": self.review,
        }
