"""Checkout API endpoint.

- POST /checkout - turn the caller's cart into one order per seller
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from marketcart.api.dependencies import get_checkout_service, get_currency, require_customer
from marketcart.api.errors import raise_for_result
from marketcart.api.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    ErrorResponse,
    SkippedLineSchema,
    order_to_response,
)
from marketcart.application.checkout_service import CheckoutService
from marketcart.domain.value_objects import Actor

router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.post(
    "",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Missing delivery address"},
        409: {"model": ErrorResponse, "description": "Cart empty or nothing orderable"},
        503: {"model": ErrorResponse, "description": "Checkout failed and was rolled back"},
    },
)
async def checkout(
    body: CheckoutRequest,
    service: Annotated[CheckoutService, Depends(get_checkout_service)],
    actor: Annotated[Actor, Depends(require_customer)],
    currency: Annotated[str, Depends(get_currency)],
) -> CheckoutResponse:
    """Check out the caller's cart.

    Lines are grouped by seller and each group becomes its own order.
    Lines that cannot be ordered are left out and reported in
    ``skipped``; the cart is cleared once at least one order exists.
    """
    address = None
    if body.delivery_address:
        try:
            address = body.delivery_address.to_domain()
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error_code": "INVALID_DELIVERY_ADDRESS", "message": str(e), "details": {}},
            ) from e

    result = await service.checkout(
        actor.id,
        delivery_mode=body.delivery_mode,
        delivery_address=address,
        customer_note=body.customer_note,
        payment_method=body.payment_method,
    )
    if not result.success:
        raise_for_result(result, "CHECKOUT_FAILED", "Checkout failed")

    return CheckoutResponse(
        orders=[order_to_response(order, currency) for order in result.orders],
        skipped=[SkippedLineSchema(**line.to_dict()) for line in result.skipped],
    )
