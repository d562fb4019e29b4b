"""Domain exceptions.

Every business-rule violation raised by an entity, a state machine or
the catalog store derives from :class:`DomainError`. Each subclass
carries a machine-readable ``error_code`` that the application layer
copies into its result objects, so callers never have to match on
message text.
"""

from typing import Any, ClassVar


class DomainError(Exception):
    """Base class for all domain exceptions."""

    error_code: ClassVar[str] = "DOMAIN_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# State Machine Errors
# ============================================================================


class InvalidStateTransitionError(DomainError):
    """Raised when an order cannot move to the requested status."""

    error_code = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
    ) -> None:
        super().__init__(
            f"Cannot transition {entity_type}({entity_id}) "
            f"from '{current_state}' to '{target_state}'",
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed_transitions or [],
            },
        )


class InvalidOrderStatusError(DomainError):
    """Raised when a status string is not a known order status."""

    error_code = "INVALID_STATUS"

    def __init__(self, status: str, allowed: list[str]) -> None:
        super().__init__(
            f"Unknown order status '{status}'",
            details={"status": status, "allowed": allowed},
        )


# ============================================================================
# Cart Errors
# ============================================================================


class CartError(DomainError):
    """Base class for cart-related errors."""

    pass


class InvalidQuantityError(CartError):
    """Raised when a quantity is out of range for the operation."""

    error_code = "INVALID_QUANTITY"

    def __init__(self, quantity: int, reason: str = "Quantity must be at least 1") -> None:
        super().__init__(
            f"Invalid quantity {quantity}: {reason}",
            details={"quantity": quantity, "reason": reason},
        )


class CartLineNotFoundError(CartError):
    """Raised when updating a product that is not in the cart."""

    error_code = "LINE_NOT_FOUND"

    def __init__(self, customer_id: str, product_id: str) -> None:
        super().__init__(
            f"Product {product_id} is not in the cart of customer {customer_id}",
            details={"customer_id": customer_id, "product_id": product_id},
        )


class EmptyCartError(CartError):
    """Raised when checking out a cart without lines."""

    error_code = "EMPTY_CART"

    def __init__(self, customer_id: str) -> None:
        super().__init__(
            "Cart is empty",
            details={"customer_id": customer_id},
        )


# ============================================================================
# Checkout Errors
# ============================================================================


class CheckoutError(DomainError):
    """Base class for checkout errors."""

    pass


class NoValidItemsError(CheckoutError):
    """Raised when no seller group in the cart could produce an order."""

    error_code = "NO_VALID_ITEMS"

    def __init__(self, customer_id: str, skipped: list[dict[str, Any]] | None = None) -> None:
        super().__init__(
            "No valid items to order",
            details={"customer_id": customer_id, "skipped": skipped or []},
        )


class InvalidDeliveryAddressError(CheckoutError):
    """Raised when home delivery is requested without an address."""

    error_code = "INVALID_DELIVERY_ADDRESS"

    def __init__(self, reason: str = "Delivery address is required for home delivery") -> None:
        super().__init__(reason, details={"reason": reason})


class CheckoutFailedError(CheckoutError):
    """Raised when a checkout was rolled back after a storage failure.

    Reservations and earlier orders of the same checkout have been
    released; the cart is unchanged and the whole checkout may be retried.
    """

    error_code = "CHECKOUT_FAILED"

    def __init__(self, customer_id: str, reason: str) -> None:
        super().__init__(
            f"Checkout failed and was rolled back: {reason}",
            details={"customer_id": customer_id, "reason": reason},
        )


# ============================================================================
# Catalog Errors
# ============================================================================


class CatalogError(DomainError):
    """Base class for catalog store errors."""

    pass


class ProductNotFoundError(CatalogError):
    """Raised when a product id does not exist in the catalog."""

    error_code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str) -> None:
        super().__init__(
            f"Product not found: {product_id}",
            details={"product_id": product_id},
        )


class ProductUnavailableError(CatalogError):
    """Raised when a product or its seller is not accepting orders."""

    error_code = "PRODUCT_UNAVAILABLE"

    def __init__(self, product_id: str, reason: str) -> None:
        super().__init__(
            f"Product {product_id} is not available: {reason}",
            details={"product_id": product_id, "reason": reason},
        )


class InsufficientStockError(CatalogError):
    """Raised when a stock adjustment would take stock below zero."""

    error_code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, requested: int, available: int) -> None:
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}",
            details={
                "product_id": product_id,
                "requested": requested,
                "available": available,
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class SellerNotFoundError(CatalogError):
    """Raised when a seller id does not exist in the catalog."""

    error_code = "SELLER_NOT_FOUND"

    def __init__(self, seller_id: str) -> None:
        super().__init__(
            f"Seller not found: {seller_id}",
            details={"seller_id": seller_id},
        )


class CatalogUnavailableError(CatalogError):
    """Raised when the catalog backend cannot be reached."""

    error_code = "CATALOG_UNAVAILABLE"

    def __init__(self, operation: str, reason: str) -> None:
        super().__init__(
            f"Catalog unavailable during {operation}: {reason}",
            details={"operation": operation, "reason": reason},
        )


# ============================================================================
# Order Errors
# ============================================================================


class OrderError(DomainError):
    """Base class for order-related errors."""

    pass


class OrderNotFoundError(OrderError):
    """Raised when an order id is unknown."""

    error_code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str) -> None:
        super().__init__(
            f"Order not found: {order_id}",
            details={"order_id": order_id},
        )


class OrderNotCancellableError(OrderError):
    """Raised when trying to cancel a delivered, cancelled or refunded order."""

    error_code = "NOT_CANCELLABLE"

    def __init__(self, order_id: str, current_status: str) -> None:
        super().__init__(
            f"Order {order_id} cannot be cancelled in status '{current_status}'",
            details={"order_id": order_id, "current_status": current_status},
        )


class DuplicateOrderNumberError(OrderError):
    """Raised when saving a new order whose number is already taken."""

    error_code = "DUPLICATE_ORDER_NUMBER"

    def __init__(self, order_number: str) -> None:
        super().__init__(
            f"Order number already in use: {order_number}",
            details={"order_number": order_number},
        )


class ConcurrentModificationError(OrderError):
    """Raised when saving an order that changed since it was loaded."""

    error_code = "CONCURRENT_MODIFICATION"

    def __init__(self, order_id: str, expected_version: int | None, stored_version: int) -> None:
        super().__init__(
            f"Order {order_id} was modified concurrently",
            details={
                "order_id": order_id,
                "expected_version": expected_version,
                "stored_version": stored_version,
            },
        )


class NotDeliveredYetError(OrderError):
    """Raised when rating an order that has not been delivered."""

    error_code = "NOT_DELIVERED_YET"

    def __init__(self, order_id: str, current_status: str) -> None:
        super().__init__(
            f"Order {order_id} can only be rated once delivered (status '{current_status}')",
            details={"order_id": order_id, "current_status": current_status},
        )


class AlreadyRatedError(OrderError):
    """Raised when rating an order a second time."""

    error_code = "ALREADY_RATED"

    def __init__(self, order_id: str) -> None:
        super().__init__(
            f"Order {order_id} has already been rated",
            details={"order_id": order_id},
        )


class InvalidRatingError(OrderError):
    """Raised when a rating value is outside 1..5."""

    error_code = "INVALID_RATING"

    def __init__(self, value: int) -> None:
        super().__init__(
            f"Rating must be between 1 and 5, got {value}",
            details={"value": value},
        )


class InvalidIdentifierError(DomainError, ValueError):
    """Raised when a customer, seller or product id is blank."""

    error_code = "INVALID_ID"

    def __init__(self, kind: str, value: str) -> None:
        super().__init__(
            f"{kind} cannot be empty",
            details={"kind": kind, "value": value},
        )


class AccessDeniedError(DomainError):
    """Raised when an actor touches an order or cart it does not own."""

    error_code = "FORBIDDEN"

    def __init__(self, actor_id: str, resource: str) -> None:
        super().__init__(
            f"Access denied to {resource}",
            details={"actor_id": actor_id, "resource": resource},
        )


# ============================================================================
# Money Errors
# ============================================================================


class NegativeMoneyError(DomainError):
    """Raised when an amount would become negative."""

    error_code = "NEGATIVE_AMOUNT"

    def __init__(self, amount: int) -> None:
        super().__init__(
            f"Money amount cannot be negative: {amount}",
            details={"amount": amount},
        )
