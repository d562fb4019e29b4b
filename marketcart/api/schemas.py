"""API schemas for MarketCart.

Pydantic models for request/response validation and serialization,
plus the converters from domain objects to responses.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from marketcart.domain.entities import CartSnapshot, Order
from marketcart.domain.state_machines import OrderStatus, PaymentStatus
from marketcart.domain.value_objects import (
    Coordinates,
    DeliveryAddress,
    DeliveryMode,
    Money,
    PaymentMethod,
    SellerRating,
)


# ============================================================================
# Common Schemas
# ============================================================================


class PriceSchema(BaseModel):
    """Price representation."""

    amount: int = Field(..., description="Amount in smallest currency unit")
    currency: str = Field(default="INR", description="Currency code")


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: Any = Field(default_factory=dict, description="Additional error details")
    request_id: str | None = Field(default=None, description="Request ID for correlation")


def price(money: Money, currency: str) -> PriceSchema:
    return PriceSchema(amount=money.amount_cents, currency=currency)


# ============================================================================
# Cart Schemas
# ============================================================================


class AddCartItemRequest(BaseModel):
    """Request to add a product to the cart."""

    product_id: str = Field(..., min_length=1, description="Product to add")
    quantity: int = Field(default=1, description="Units to add, at least 1")


class UpdateCartItemRequest(BaseModel):
    """Request to replace a cart line's quantity. 0 removes the line."""

    quantity: int = Field(..., description="New quantity")


class CartLineSchema(BaseModel):
    """A cart line."""

    product_id: str
    seller_id: str
    product_name: str
    quantity: int
    unit_price: PriceSchema
    line_total: PriceSchema
    added_at: datetime


class CartResponse(BaseModel):
    """Cart with totals computed at read time."""

    customer_id: str
    lines: list[CartLineSchema]
    total_items: int
    total_amount: PriceSchema
    last_modified: datetime


class LineAvailabilitySchema(BaseModel):
    """Whether a cart line can currently be ordered."""

    product_id: str
    available: bool
    reason: str | None = Field(default=None, description="Why the line cannot be ordered")
    available_quantity: int | None = Field(default=None, description="Stock on hand, null if untracked")


class CartSummaryResponse(BaseModel):
    """Cart plus per-line availability."""

    cart: CartResponse
    availability: list[LineAvailabilitySchema]
    all_available: bool


def cart_to_response(cart: CartSnapshot, currency: str) -> CartResponse:
    """Convert a cart snapshot to CartResponse."""
    return CartResponse(
        customer_id=cart.customer_id,
        lines=[
            CartLineSchema(
                product_id=str(line.product_id),
                seller_id=str(line.seller_id),
                product_name=line.product_name,
                quantity=line.quantity,
                unit_price=price(line.unit_price, currency),
                line_total=price(line.line_total, currency),
                added_at=line.added_at,
            )
            for line in cart.lines
        ],
        total_items=cart.total_items,
        total_amount=price(cart.total_amount, currency),
        last_modified=cart.last_modified,
    )


# ============================================================================
# Checkout Schemas
# ============================================================================


class CoordinatesSchema(BaseModel):
    """Geo point."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class DeliveryAddressSchema(BaseModel):
    """Home delivery address."""

    street: str = Field(..., min_length=1, max_length=500)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(default="", max_length=100)
    pincode: str = Field(..., min_length=1, max_length=20)
    coordinates: CoordinatesSchema | None = None

    def to_domain(self) -> DeliveryAddress:
        coordinates = None
        if self.coordinates:
            coordinates = Coordinates(self.coordinates.latitude, self.coordinates.longitude)
        return DeliveryAddress(
            street=self.street,
            city=self.city,
            state=self.state,
            pincode=self.pincode,
            coordinates=coordinates,
        )


class CheckoutRequest(BaseModel):
    """Request to check out the caller's cart."""

    delivery_mode: DeliveryMode = Field(..., description="pickup or delivery")
    delivery_address: DeliveryAddressSchema | None = Field(
        default=None, description="Required when delivery_mode is delivery"
    )
    customer_note: str | None = Field(default=None, max_length=500)
    payment_method: PaymentMethod = Field(default=PaymentMethod.COD)


class SkippedLineSchema(BaseModel):
    """A cart line that was left out of the orders."""

    product_id: str
    seller_id: str
    quantity: int
    reason: str
    available_quantity: int | None = None


# ============================================================================
# Order Schemas
# ============================================================================


class OrderLineSchema(BaseModel):
    """Order line with the product details frozen at order time."""

    product_id: str
    name: str
    unit: str
    image_url: str | None
    catalog_price: PriceSchema
    quantity: int
    unit_price: PriceSchema
    line_total: PriceSchema


class PricingSchema(BaseModel):
    """Order price breakdown."""

    subtotal: PriceSchema
    delivery_fee: PriceSchema
    tax: PriceSchema
    discount: PriceSchema
    total: PriceSchema


class PaymentSchema(BaseModel):
    """Payment tracking."""

    method: PaymentMethod
    status: PaymentStatus
    paid_at: datetime | None = None


class DeliverySchema(BaseModel):
    """Delivery details."""

    mode: DeliveryMode
    fee: PriceSchema
    address: DeliveryAddressSchema | None = None
    delivered_at: datetime | None = None


class TimelineEntrySchema(BaseModel):
    """One status change."""

    status: OrderStatus
    timestamp: datetime
    note: str


class RatingSchema(BaseModel):
    """Customer rating."""

    value: int
    review: str
    rated_at: datetime | None


class OrderResponse(BaseModel):
    """Full order."""

    id: str
    order_number: str
    customer_id: str
    seller_id: str
    status: OrderStatus
    lines: list[OrderLineSchema]
    pricing: PricingSchema
    payment: PaymentSchema
    delivery: DeliverySchema
    timeline: list[TimelineEntrySchema]
    customer_note: str | None = None
    rating: RatingSchema | None = None
    cancellation_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class OrderSummarySchema(BaseModel):
    """Order summary for lists."""

    id: str
    order_number: str
    customer_id: str
    seller_id: str
    status: OrderStatus
    total: PriceSchema
    item_count: int
    created_at: datetime


class OrdersListResponse(BaseModel):
    """Paginated orders."""

    items: list[OrderSummarySchema]
    total: int
    page: int
    page_size: int
    has_more: bool


class CheckoutResponse(BaseModel):
    """Orders created by a checkout and the lines left out."""

    orders: list[OrderResponse]
    skipped: list[SkippedLineSchema]


class OrderStatusUpdateRequest(BaseModel):
    """Seller request to change an order's status."""

    status: str = Field(..., description="Target status")
    note: str = Field(default="", max_length=500)


class OrderCancelRequest(BaseModel):
    """Request to cancel an order."""

    reason: str | None = Field(default=None, max_length=500)


class RateOrderRequest(BaseModel):
    """Customer rating of a delivered order."""

    value: int = Field(..., description="Stars, 1 to 5")
    review: str | None = Field(default=None, max_length=2000)


class SellerRatingSchema(BaseModel):
    """Seller's running rating."""

    average: float
    count: int


class RateOrderResponse(BaseModel):
    """Rated order and the seller's updated rating."""

    order: OrderResponse
    seller_rating: SellerRatingSchema


def order_to_response(order: Order, currency: str) -> OrderResponse:
    """Convert an Order to OrderResponse."""
    address = None
    if order.delivery.address:
        a = order.delivery.address
        address = DeliveryAddressSchema(
            street=a.street,
            city=a.city,
            state=a.state,
            pincode=a.pincode,
            coordinates=(
                CoordinatesSchema(latitude=a.coordinates.latitude, longitude=a.coordinates.longitude)
                if a.coordinates
                else None
            ),
        )

    rating = None
    if order.rating:
        rating = RatingSchema(
            value=order.rating.value,
            review=order.rating.review,
            rated_at=order.rating.rated_at,
        )

    return OrderResponse(
        id=str(order.id),
        order_number=str(order.order_number),
        customer_id=str(order.customer_id),
        seller_id=str(order.seller_id),
        status=order.status,
        lines=[
            OrderLineSchema(
                product_id=str(line.product_id),
                name=line.snapshot.name,
                unit=line.snapshot.unit,
                image_url=line.snapshot.image_url,
                catalog_price=price(line.snapshot.price, currency),
                quantity=line.quantity,
                unit_price=price(line.unit_price, currency),
                line_total=price(line.line_total, currency),
            )
            for line in order.lines
        ],
        pricing=PricingSchema(
            subtotal=price(order.pricing.subtotal, currency),
            delivery_fee=price(order.pricing.delivery_fee, currency),
            tax=price(order.pricing.tax, currency),
            discount=price(order.pricing.discount, currency),
            total=price(order.pricing.total, currency),
        ),
        payment=PaymentSchema(
            method=order.payment.method,
            status=order.payment.status,
            paid_at=order.payment.paid_at,
        ),
        delivery=DeliverySchema(
            mode=order.delivery.mode,
            fee=price(order.delivery.fee, currency),
            address=address,
            delivered_at=order.delivery.delivered_at,
        ),
        timeline=[
            TimelineEntrySchema(status=entry.status, timestamp=entry.timestamp, note=entry.note)
            for entry in order.timeline
        ],
        customer_note=order.customer_note,
        rating=rating,
        cancellation_reason=order.cancellation_reason,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def order_to_summary(order: Order, currency: str) -> OrderSummarySchema:
    """Convert an Order to OrderSummarySchema."""
    return OrderSummarySchema(
        id=str(order.id),
        order_number=str(order.order_number),
        customer_id=str(order.customer_id),
        seller_id=str(order.seller_id),
        status=order.status,
        total=price(order.total, currency),
        item_count=order.item_count,
        created_at=order.created_at,
    )


def seller_rating_to_schema(rating: SellerRating) -> SellerRatingSchema:
    return SellerRatingSchema(average=float(rating.average), count=rating.count)
