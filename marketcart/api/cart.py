"""Cart API endpoints.

Provides endpoints for the caller's cart:
- GET /cart - cart with totals
- GET /cart/summary - cart with per-line availability
- POST /cart/items - add a product
- PUT /cart/items/{product_id} - replace a line's quantity
- DELETE /cart/items/{product_id} - remove a line
- DELETE /cart - clear the cart
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from marketcart.api.dependencies import get_cart_service, get_currency, require_customer
from marketcart.api.errors import raise_for_result
from marketcart.api.schemas import (
    AddCartItemRequest,
    CartResponse,
    CartSummaryResponse,
    ErrorResponse,
    LineAvailabilitySchema,
    UpdateCartItemRequest,
    cart_to_response,
)
from marketcart.application.cart_service import CartResult, CartService
from marketcart.domain.value_objects import Actor

router = APIRouter(prefix="/cart", tags=["Cart"])

Service = Annotated[CartService, Depends(get_cart_service)]
Customer = Annotated[Actor, Depends(require_customer)]
Currency = Annotated[str, Depends(get_currency)]


def _respond(result: CartResult, currency: str) -> CartResponse:
    if not result.success or result.cart is None:
        raise_for_result(result, "CART_ERROR", "Cart operation failed")
    return cart_to_response(result.cart, currency)


@router.get("", response_model=CartResponse)
async def get_cart(service: Service, actor: Customer, currency: Currency) -> CartResponse:
    """Get the caller's cart."""
    return _respond(await service.get_cart(actor.id), currency)


@router.get("/summary", response_model=CartSummaryResponse)
async def get_cart_summary(service: Service, actor: Customer, currency: Currency) -> CartSummaryResponse:
    """Get the cart with each line checked against the catalog."""
    result = await service.get_cart_summary(actor.id)
    if not result.success or result.cart is None:
        raise_for_result(result, "CART_ERROR", "Cart summary failed")

    return CartSummaryResponse(
        cart=cart_to_response(result.cart, currency),
        availability=[
            LineAvailabilitySchema(
                product_id=line.product_id,
                available=line.available,
                reason=line.reason,
                available_quantity=line.available_quantity,
            )
            for line in result.availability
        ],
        all_available=result.all_available,
    )


@router.post(
    "/items",
    response_model=CartResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid quantity"},
        404: {"model": ErrorResponse, "description": "Product not found"},
        409: {"model": ErrorResponse, "description": "Product unavailable or out of stock"},
    },
)
async def add_cart_item(
    body: AddCartItemRequest,
    service: Service,
    actor: Customer,
    currency: Currency,
) -> CartResponse:
    """Add units of a product to the cart.

    Adding a product already in the cart increases that line's quantity
    and refreshes its price.
    """
    return _respond(await service.add_to_cart(actor.id, body.product_id, body.quantity), currency)


@router.put(
    "/items/{product_id}",
    response_model=CartResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid quantity"},
        404: {"model": ErrorResponse, "description": "Line or product not found"},
        409: {"model": ErrorResponse, "description": "Product unavailable or out of stock"},
    },
)
async def update_cart_item(
    product_id: str,
    body: UpdateCartItemRequest,
    service: Service,
    actor: Customer,
    currency: Currency,
) -> CartResponse:
    """Replace a line's quantity. A quantity of 0 removes the line."""
    return _respond(await service.update_cart_line(actor.id, product_id, body.quantity), currency)


@router.delete("/items/{product_id}", response_model=CartResponse)
async def remove_cart_item(
    product_id: str,
    service: Service,
    actor: Customer,
    currency: Currency,
) -> CartResponse:
    """Remove a line. Removing an absent product is not an error."""
    return _respond(await service.remove_cart_line(actor.id, product_id), currency)


@router.delete("", response_model=CartResponse)
async def clear_cart(service: Service, actor: Customer, currency: Currency) -> CartResponse:
    """Remove every line from the cart."""
    return _respond(await service.clear_cart(actor.id), currency)
