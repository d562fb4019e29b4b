"""Domain entities for MarketCart.

Entities are domain objects with identity that persists across state changes.
This module contains the catalog records (Product, Seller) and the two
aggregates the engine owns: Cart and Order.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime

from marketcart.domain.base import AggregateRoot, Entity, utc_now
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
    AlreadyRatedError,
    CartLineNotFoundError,
    InsufficientStockError,
    InvalidQuantityError,
    NotDeliveredYetError,
    OrderNotCancellableError,
)
from marketcart.domain.state_machines import (
    OrderStatus,
    PaymentStatus,
    ProductStatus,
    validate_order_transition,
)
from marketcart.domain.value_objects import (
    CustomerId,
    Delivery,
    DeliveryAddress,
    DeliveryMode,
    Money,
    OrderId,
    OrderNumber,
    Payment,
    PaymentMethod,
    Pricing,
    ProductId,
    ProductSnapshot,
    Rating,
    SellerId,
    SellerRating,
    SellerStats,
    TimelineEntry,
    UnavailableReason,
)

ORDER_PLACED_NOTE = "Order placed"
DEFAULT_CANCEL_REASON = "Cancelled by customer"


# ============================================================================
# Catalog Records
# ============================================================================


@dataclass
class Product(Entity[ProductId]):
    """A sellable catalog item.

    When ``track_stock`` is false the product never runs out, whatever
    ``stock_quantity`` says.

    Attributes:
        id: Product identifier.
        seller_id: Seller that owns the product.
        name: Display name.
        selling_price: Current price per unit.
        stock_quantity: Units on hand, never negative for tracked stock.
        track_stock: Whether stock limits apply.
        status: Catalog lifecycle status.
        unit: Selling unit (piece, kg, litre...).
        image_url: Primary image.
    """

    id: ProductId
    seller_id: SellerId
    name: str
    selling_price: Money
    stock_quantity: int = 0
    track_stock: bool = True
    status: ProductStatus = ProductStatus.ACTIVE
    unit: str = "piece"
    image_url: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE

    @property
    def available_quantity(self) -> int | None:
        """Units that can still be sold, or None when stock is untracked."""
        return self.stock_quantity if self.track_stock else None

    def has_stock_for(self, quantity: int) -> bool:
        """Check if ``quantity`` units can be sold right now."""
        return not self.track_stock or self.stock_quantity >= quantity

    def unavailable_reason(self, quantity: int) -> UnavailableReason | None:
        """Explain why ``quantity`` units cannot be ordered, or None if they can."""
        if self.status == ProductStatus.OUT_OF_STOCK or not self.has_stock_for(quantity):
            return UnavailableReason.INSUFFICIENT_STOCK
        if not self.is_active:
            return UnavailableReason.PRODUCT_INACTIVE
        return None

    def apply_stock_delta(self, delta: int) -> int:
        """Reserve (negative delta) or release (positive delta) stock.

        A tracked product at zero stock becomes out of stock; restocking
        an out-of-stock product makes it active again. Untracked products
        are left as they are.

        Args:
            delta: Signed change in units.

        Returns:
            Stock quantity after the change.

        Raises:
            InsufficientStockError: If tracked stock would go negative.
        """
        if not self.track_stock:
            return self.stock_quantity

        new_quantity = self.stock_quantity + delta
        if new_quantity < 0:
            raise InsufficientStockError(str(self.id), -delta, self.stock_quantity)

        self.stock_quantity = new_quantity
        if new_quantity == 0 and self.status == ProductStatus.ACTIVE:
            self.status = ProductStatus.OUT_OF_STOCK
        elif new_quantity > 0 and self.status == ProductStatus.OUT_OF_STOCK:
            self.status = ProductStatus.ACTIVE
        return new_quantity

    def snapshot(self) -> ProductSnapshot:
        """Freeze the details an order line keeps."""
        return ProductSnapshot(
            name=self.name,
            price=self.selling_price,
            unit=self.unit,
            image_url=self.image_url,
        )


@dataclass
class Seller(Entity[SellerId]):
    """A store that owns products and receives orders.

    Attributes:
        id: Seller identifier.
        name: Store name.
        is_active: Inactive sellers accept no new orders.
        delivery_fee: Flat fee charged for home delivery.
        rating: Running rating average.
        stats: Order count and revenue.
    """

    id: SellerId
    name: str
    is_active: bool = True
    delivery_fee: Money = field(default_factory=Money.zero)
    rating: SellerRating = field(default_factory=SellerRating)
    stats: SellerStats = field(default_factory=SellerStats)

    def fee_for(self, mode: DeliveryMode) -> Money:
        """Delivery fee for the given mode. Pickup is free."""
        if mode == DeliveryMode.PICKUP:
            return Money.zero()
        return self.delivery_fee

    def record_order(self, revenue: Money) -> SellerStats:
        """Count one more order and its revenue."""
        self.stats = SellerStats(
            total_orders=self.stats.total_orders + 1,
            total_revenue=self.stats.total_revenue + revenue,
        )
        return self.stats

    def revert_order(self, revenue: Money) -> SellerStats:
        """Undo :meth:`record_order` for an order that was rolled back."""
        self.stats = SellerStats(
            total_orders=max(self.stats.total_orders - 1, 0),
            total_revenue=Money(max(self.stats.total_revenue.amount_cents - revenue.amount_cents, 0)),
        )
        return self.stats

    def record_rating(self, value: int) -> SellerRating:
        """Fold a new order rating into the running average."""
        self.rating = self.rating.fold(value)
        return self.rating


# ============================================================================
# Cart Aggregate
# ============================================================================


@dataclass
class CartLine:
    """One product in a cart, with the price captured when it was added.

    Attributes:
        product_id: Product in the line.
        seller_id: Seller owning the product, used to split checkout.
        product_name: Name for display.
        quantity: Number of units, at least 1.
        unit_price: Price snapshot from the last add.
        added_at: When the product first entered the cart.
    """

    product_id: ProductId
    seller_id: SellerId
    product_name: str
    quantity: int
    unit_price: Money
    added_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise InvalidQuantityError(self.quantity)

    @property
    def line_total(self) -> Money:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class CartSnapshot:
    """Point-in-time view of a cart with totals computed fresh."""

    customer_id: str
    lines: tuple[CartLine, ...]
    total_items: int
    total_amount: Money
    last_modified: datetime


@dataclass(kw_only=True)
class Cart(AggregateRoot[CustomerId]):
    """Shopping cart aggregate root.

    A customer owns exactly one cart, keyed by the customer id. The
    cart can mix products from several sellers; checkout splits it.
    At most one line exists per product.

    Attributes:
        id: Owning customer.
        lines: Cart lines in insertion order.
    """

    aggregate_type = "Cart"

    id: CustomerId
    lines: list[CartLine] = field(default_factory=list)

    @property
    def last_modified(self) -> datetime:
        return self.updated_at

    @property
    def total_items(self) -> int:
        """Sum of line quantities."""
        return sum(line.quantity for line in self.lines)

    @property
    def total_amount(self) -> Money:
        """Sum of line totals at the captured prices."""
        total = Money.zero()
        for line in self.lines:
            total = total + line.line_total
        return total

    @property
    def is_empty(self) -> bool:
        return len(self.lines) == 0

    def get_line(self, product_id: ProductId) -> CartLine | None:
        """Find the line holding a product.

        Args:
            product_id: Product to look up.

        Returns:
            The line, or None if the product is not in the cart.
        """
        for line in self.lines:
            if line.product_id == product_id:
                return line
        return None

    # -------------------------------------------------------------------------
    # Line Operations
    # -------------------------------------------------------------------------

    def add_line(self, product: Product, quantity: int = 1) -> CartLine:
        """Add units of a product to the cart.

        An existing line for the product grows by ``quantity`` and its
        price snapshot is refreshed to the product's current price.
        Otherwise a new line is appended at the current price.

        Args:
            product: Catalog product being added.
            quantity: Number of units to add.

        Returns:
            The new or updated CartLine.

        Raises:
            InvalidQuantityError: If quantity is less than 1.
        """
        if quantity < 1:
            raise InvalidQuantityError(quantity)

        line = self.get_line(product.id)
        if line is not None:
            line.quantity += quantity
            line.unit_price = product.selling_price
            line.product_name = product.name
        else:
            line = CartLine(
                product_id=product.id,
                seller_id=product.seller_id,
                product_name=product.name,
                quantity=quantity,
                unit_price=product.selling_price,
            )
            self.lines.append(line)

        self._touch()
        self._record(
            CartLineAdded,
            customer_id=str(self.id),
            product_id=str(product.id),
            seller_id=str(product.seller_id),
            quantity=quantity,
            line_quantity=line.quantity,
            unit_price_cents=line.unit_price.amount_cents,
        )
        return line

    def set_line_quantity(self, product_id: ProductId, quantity: int) -> CartLine | None:
        """Replace the quantity of a line.

        Args:
            product_id: Product whose line changes.
            quantity: New quantity; 0 removes the line.

        Returns:
            The updated line, or None when the line was removed.

        Raises:
            InvalidQuantityError: If quantity is negative.
            CartLineNotFoundError: If quantity > 0 and the product is not in the cart.
        """
        if quantity < 0:
            raise InvalidQuantityError(quantity, "Quantity cannot be negative")
        if quantity == 0:
            self.remove_line(product_id)
            return None

        line = self.get_line(product_id)
        if line is None:
            raise CartLineNotFoundError(str(self.id), str(product_id))

        old_quantity = line.quantity
        line.quantity = quantity
        self._touch()
        self._record(
            CartLineUpdated,
            customer_id=str(self.id),
            product_id=str(product_id),
            old_quantity=old_quantity,
            new_quantity=quantity,
        )
        return line

    def remove_line(self, product_id: ProductId) -> bool:
        """Remove a product's line. Removing an absent line is a no-op.

        Returns:
            True if a line was removed.
        """
        line = self.get_line(product_id)
        if line is None:
            return False
        self.lines.remove(line)
        self._touch()
        self._record(CartLineRemoved, customer_id=str(self.id), product_id=str(product_id))
        return True

    def clear(self) -> int:
        """Remove all lines.

        Returns:
            Number of lines removed.
        """
        count = len(self.lines)
        self.lines.clear()
        self._touch()
        if count:
            self._record(CartCleared, customer_id=str(self.id), lines_removed=count)
        return count

    def snapshot(self) -> CartSnapshot:
        """Return lines and totals computed fresh."""
        return CartSnapshot(
            customer_id=str(self.id),
            lines=tuple(replace(line) for line in self.lines),
            total_items=self.total_items,
            total_amount=self.total_amount,
            last_modified=self.last_modified,
        )

    def lines_by_seller(self) -> dict[SellerId, list[CartLine]]:
        """Group lines by seller, sellers in first-seen order."""
        groups: dict[SellerId, list[CartLine]] = {}
        for line in self.lines:
            groups.setdefault(line.seller_id, []).append(line)
        return groups


# ============================================================================
# Order Aggregate
# ============================================================================


@dataclass
class OrderLine:
    """A line of an order, frozen at checkout.

    ``unit_price`` is the price the customer pays, taken from the cart.
    ``snapshot`` keeps the catalog details as they were at order time.

    Attributes:
        product_id: Product identifier.
        snapshot: Name, catalog price, unit and image at order time.
        quantity: Ordered units.
        unit_price: Charged price per unit.
    """

    product_id: ProductId
    snapshot: ProductSnapshot
    quantity: int
    unit_price: Money

    @property
    def line_total(self) -> Money:
        return self.unit_price * self.quantity

    @classmethod
    def from_cart_line(cls, line: CartLine, product: Product) -> "OrderLine":
        """Create an order line from a cart line and the current product.

        Args:
            line: Cart line being ordered.
            product: Catalog record read during checkout.

        Returns:
            OrderLine snapshot.
        """
        return cls(
            product_id=line.product_id,
            snapshot=product.snapshot(),
            quantity=line.quantity,
            unit_price=line.unit_price,
        )


@dataclass(kw_only=True)
class Order(AggregateRoot[OrderId]):
    """Order aggregate root.

    One order covers the lines of a single seller. Orders are never
    deleted; cancellation and refund are statuses. The timeline is
    append-only and its last entry always matches ``status``.

    Attributes:
        id: Unique order identifier.
        order_number: Human-facing number.
        customer_id: Customer who placed the order.
        seller_id: Seller fulfilling the order.
        lines: Ordered lines.
        pricing: Price breakdown; total is derived.
        payment: Payment method and status.
        delivery: Delivery mode, address, fee and delivered_at.
        status: Current lifecycle status.
        timeline: Status history.
        customer_note: Free text from the customer.
        rating: Customer rating once delivered.
        cancellation_reason: Reason given when cancelled.
    """

    aggregate_type = "Order"

    id: OrderId
    order_number: OrderNumber
    customer_id: CustomerId
    seller_id: SellerId
    lines: list[OrderLine]
    pricing: Pricing
    delivery: Delivery
    payment: Payment = field(default_factory=Payment)
    status: OrderStatus = OrderStatus.PENDING
    timeline: list[TimelineEntry] = field(default_factory=list)
    customer_note: str | None = None
    rating: Rating | None = None
    cancellation_reason: str | None = None

    @classmethod
    def place(
        cls,
        *,
        order_number: OrderNumber,
        customer_id: CustomerId,
        seller_id: SellerId,
        lines: list[OrderLine],
        delivery_mode: DeliveryMode,
        delivery_fee: Money,
        delivery_address: DeliveryAddress | None = None,
        payment_method: PaymentMethod = PaymentMethod.COD,
        customer_note: str | None = None,
        order_id: OrderId | None = None,
    ) -> "Order":
        """Create a pending order for one seller group.

        Args:
            order_number: Pre-drawn order number.
            customer_id: Customer placing the order.
            seller_id: Seller of every line.
            lines: Surviving lines of the group, at least one.
            delivery_mode: Pickup or home delivery.
            delivery_fee: Fee for the chosen mode.
            delivery_address: Required for home delivery.
            payment_method: Cash on delivery or online.
            customer_note: Optional note.
            order_id: Optional pre-generated id.

        Returns:
            New Order with a single "Order placed" timeline entry.

        Raises:
            ValueError: If there are no lines.
        """
        if not lines:
            raise ValueError("Cannot place an order without lines")

        subtotal = Money.zero()
        for line in lines:
            subtotal = subtotal + line.line_total

        now = utc_now()
        order = cls(
            id=order_id or OrderId.generate(),
            order_number=order_number,
            customer_id=customer_id,
            seller_id=seller_id,
            lines=list(lines),
            pricing=Pricing(subtotal=subtotal, delivery_fee=delivery_fee),
            delivery=Delivery(mode=delivery_mode, fee=delivery_fee, address=delivery_address),
            payment=Payment(method=payment_method),
            customer_note=customer_note,
            timeline=[TimelineEntry(status=OrderStatus.PENDING, timestamp=now, note=ORDER_PLACED_NOTE)],
            created_at=now,
            updated_at=now,
        )
        order._record(
            OrderCreated,
            order_number=str(order_number),
            customer_id=str(customer_id),
            seller_id=str(seller_id),
            line_count=len(order.lines),
            total_cents=order.total.amount_cents,
            delivery_mode=delivery_mode.value,
            payment_method=payment_method.value,
        )
        return order

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    @property
    def total(self) -> Money:
        return self.pricing.total

    @property
    def item_count(self) -> int:
        """Sum of all line quantities."""
        return sum(line.quantity for line in self.lines)

    def is_visible_to(self, actor_id: str) -> bool:
        """Check if the actor is this order's customer or seller."""
        return actor_id in (str(self.customer_id), str(self.seller_id))

    # -------------------------------------------------------------------------
    # State Transitions
    # -------------------------------------------------------------------------

    def set_status(self, new_status: OrderStatus, note: str = "") -> None:
        """Move the order to a new status and record it on the timeline.

        Cancellation is delegated to :meth:`cancel`. Delivering stamps
        ``delivered_at`` and settles a cash-on-delivery payment.
        Refunding marks the payment refunded.

        Args:
            new_status: Target status.
            note: Timeline note.

        Raises:
            InvalidStateTransitionError: If the order is closed or the
                target is unreachable from the current status.
            OrderNotCancellableError: If cancelling a non-cancellable order.
        """
        if new_status == OrderStatus.CANCELLED:
            self.cancel(note)
            return

        validate_order_transition(str(self.id), self.status, new_status)
        old_status = self.status
        now = utc_now()

        if new_status == OrderStatus.DELIVERED:
            self.delivery = replace(self.delivery, delivered_at=now)
            if self.payment.method == PaymentMethod.COD and self.payment.status == PaymentStatus.PENDING:
                self.payment = replace(self.payment, status=PaymentStatus.PAID, paid_at=now)
        elif new_status == OrderStatus.REFUNDED:
            self.payment = replace(self.payment, status=PaymentStatus.REFUNDED)

        self._append_timeline(new_status, now, note)
        self._record(
            OrderStatusChanged,
            order_number=str(self.order_number),
            seller_id=str(self.seller_id),
            customer_id=str(self.customer_id),
            old_status=old_status.value,
            new_status=new_status.value,
            note=note,
        )

    def cancel(self, reason: str | None = None) -> None:
        """Cancel the order.

        Stock restoration is the caller's job; this only moves the status.

        Args:
            reason: Cancellation reason, defaults to "Cancelled by customer".

        Raises:
            OrderNotCancellableError: If delivered, cancelled or refunded.
        """
        if not self.status.is_cancellable():
            raise OrderNotCancellableError(str(self.id), self.status.value)

        validate_order_transition(str(self.id), self.status, OrderStatus.CANCELLED)
        previous_status = self.status
        reason = reason or DEFAULT_CANCEL_REASON
        self.cancellation_reason = reason
        self._append_timeline(OrderStatus.CANCELLED, utc_now(), reason)
        self._record(
            OrderCancelled,
            order_number=str(self.order_number),
            seller_id=str(self.seller_id),
            customer_id=str(self.customer_id),
            previous_status=previous_status.value,
            reason=reason,
        )

    def rate(self, value: int, review: str = "") -> Rating:
        """Rate a delivered order once.

        Args:
            value: Stars, 1..5.
            review: Optional review text.

        Returns:
            The stored rating.

        Raises:
            InvalidRatingError: If value is outside 1..5.
            NotDeliveredYetError: If the order is not delivered.
            AlreadyRatedError: If the order was already rated.
        """
        rating = Rating(value=value, review=review or "")
        if self.status != OrderStatus.DELIVERED:
            raise NotDeliveredYetError(str(self.id), self.status.value)
        if self.rating is not None:
            raise AlreadyRatedError(str(self.id))

        self.rating = rating
        self._touch()
        self._record(
            OrderRated,
            order_number=str(self.order_number),
            seller_id=str(self.seller_id),
            value=rating.value,
            review=rating.review,
        )
        return rating

    def withdraw_rating(self) -> None:
        """Drop the rating and its pending event when the seller aggregate was not updated."""
        self.rating = None
        self._events = [e for e in self._events if not isinstance(e, OrderRated)]
        self._touch()

    def _append_timeline(self, status: OrderStatus, timestamp: datetime, note: str) -> None:
        self.status = status
        self.timeline.append(TimelineEntry(status=status, timestamp=timestamp, note=note))
        self._touch()
