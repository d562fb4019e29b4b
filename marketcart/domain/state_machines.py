"""State machines for domain entities.

The order lifecycle is deliberately permissive: the owning seller may
set any active status directly, skipping or revisiting steps. Only the
closed states are guarded, and refunds need a delivered order.
"""

from enum import Enum

from marketcart.domain.exceptions import InvalidOrderStatusError, InvalidStateTransitionError


# ============================================================================
# Order State Machine
# ============================================================================


class OrderStatus(str, Enum):
    """Order lifecycle states.

    State diagram:
        PENDING ─► CONFIRMED ─► PREPARING ─► READY ─► OUT_FOR_DELIVERY ─► DELIVERED
           │           │            │          │              │               │
           └───────────┴────────────┴──────────┴──────────────┘               │ refund
                                    │ cancel                                  ▼
                                    ▼                                      REFUNDED
                                CANCELLED

    Any active state may jump to any other active state or to DELIVERED.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @classmethod
    def parse(cls, value: str) -> "OrderStatus":
        """Parse a raw status string.

        Args:
            value: Status as sent by the caller.

        Returns:
            Matching OrderStatus.

        Raises:
            InvalidOrderStatusError: If the value is not a known status.
        """
        try:
            return cls(value)
        except ValueError:
            raise InvalidOrderStatusError(value, [s.value for s in cls]) from None

    def can_transition_to(self, target: "OrderStatus") -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _ORDER_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["OrderStatus"]:
        """Get list of valid target states.

        Returns:
            List of states that can be transitioned to.
        """
        return sorted(_ORDER_TRANSITIONS.get(self, set()), key=_ORDER_SEQUENCE.index)

    def is_cancellable(self) -> bool:
        """Check if order can be cancelled.

        Returns:
            True if order can be cancelled.
        """
        return self not in {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state.

        Returns:
            True if no further transitions are possible.
        """
        return len(_ORDER_TRANSITIONS.get(self, set())) == 0

    def is_active(self) -> bool:
        """Check if the order is still being fulfilled."""
        return self in _ACTIVE_STATES


_ORDER_SEQUENCE: list[OrderStatus] = list(OrderStatus)

_ACTIVE_STATES: frozenset[OrderStatus] = frozenset(
    {
        OrderStatus.PENDING,
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.READY,
        OrderStatus.OUT_FOR_DELIVERY,
    }
)

# Order state transitions (defined outside enum to avoid Enum restrictions).
# Active states may repeat themselves so a seller can add a timeline note.
_ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    **{
        state: set(_ACTIVE_STATES) | {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
        for state in _ACTIVE_STATES
    },
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),  # Terminal state
    OrderStatus.REFUNDED: set(),  # Terminal state
}


# ============================================================================
# Payment and Product States
# ============================================================================


class PaymentStatus(str, Enum):
    """Payment tracking states. No gateway is involved."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class ProductStatus(str, Enum):
    """Catalog lifecycle of a product."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    OUT_OF_STOCK = "out_of_stock"
    DISCONTINUED = "discontinued"


# ============================================================================
# State Machine Helpers
# ============================================================================


def validate_order_transition(
    order_id: str,
    current_status: OrderStatus,
    target_status: OrderStatus,
) -> None:
    """Validate and raise if order state transition is invalid.

    Args:
        order_id: Order identifier for error message.
        current_status: Current order status.
        target_status: Target order status.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="Order",
            entity_id=order_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )
