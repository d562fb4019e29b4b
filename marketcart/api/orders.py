"""Order API endpoints.

Provides endpoints for the order lifecycle:
- GET /orders - the caller's orders as a customer (paginated)
- GET /orders/seller - the caller's orders as a seller (paginated)
- GET /orders/{id} - order details
- PATCH /orders/{id}/status - seller moves the order along
- POST /orders/{id}/cancel - cancel and restore stock
- POST /orders/{id}/rating - customer rates a delivered order
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from marketcart.api.dependencies import (
    get_actor,
    get_currency,
    get_order_service,
    require_customer,
    require_seller,
)
from marketcart.api.errors import raise_for_result
from marketcart.api.schemas import (
    ErrorResponse,
    OrderCancelRequest,
    OrderResponse,
    OrdersListResponse,
    OrderStatusUpdateRequest,
    RateOrderRequest,
    RateOrderResponse,
    order_to_response,
    order_to_summary,
    seller_rating_to_schema,
)
from marketcart.application.order_service import ListOrdersResult, OrderResult, OrderService
from marketcart.domain.value_objects import Actor

router = APIRouter(prefix="/orders", tags=["Orders"])

Service = Annotated[OrderService, Depends(get_order_service)]
Currency = Annotated[str, Depends(get_currency)]

_ORDER_ERRORS = {
    403: {"model": ErrorResponse, "description": "Order belongs to someone else"},
    404: {"model": ErrorResponse, "description": "Order not found"},
}


def _order_response(result: OrderResult, currency: str) -> OrderResponse:
    if not result.success or result.order is None:
        raise_for_result(result, "ORDER_ERROR", "Order operation failed")
    return order_to_response(result.order, currency)


def _list_response(result: ListOrdersResult, currency: str) -> OrdersListResponse:
    if not result.success:
        raise_for_result(result, "ORDER_ERROR", "Failed to list orders")
    return OrdersListResponse(
        items=[order_to_summary(order, currency) for order in result.orders],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        has_more=result.page * result.page_size < result.total,
    )


@router.get("", response_model=OrdersListResponse)
async def list_customer_orders(
    service: Service,
    actor: Annotated[Actor, Depends(require_customer)],
    currency: Currency,
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int | None = Query(default=None, ge=1, description="Items per page"),
    status: str | None = Query(default=None, description="Filter by status"),
) -> OrdersListResponse:
    """List the caller's orders, newest first."""
    result = await service.list_orders_for_customer(actor.id, page=page, page_size=page_size, status=status)
    return _list_response(result, currency)


@router.get("/seller", response_model=OrdersListResponse)
async def list_seller_orders(
    service: Service,
    actor: Annotated[Actor, Depends(require_seller)],
    currency: Currency,
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int | None = Query(default=None, ge=1, description="Items per page"),
    status: str | None = Query(default=None, description="Filter by status"),
) -> OrdersListResponse:
    """List orders placed with the calling seller, newest first."""
    result = await service.list_orders_for_seller(actor.id, page=page, page_size=page_size, status=status)
    return _list_response(result, currency)


@router.get("/{order_id}", response_model=OrderResponse, responses=_ORDER_ERRORS)
async def get_order(
    order_id: str,
    service: Service,
    actor: Annotated[Actor, Depends(get_actor)],
    currency: Currency,
) -> OrderResponse:
    """Get an order placed by or with the caller."""
    return _order_response(await service.get_order(order_id, actor), currency)


@router.patch(
    "/{order_id}/status",
    response_model=OrderResponse,
    responses={
        **_ORDER_ERRORS,
        400: {"model": ErrorResponse, "description": "Unknown status"},
        409: {"model": ErrorResponse, "description": "Transition not allowed"},
    },
)
async def update_order_status(
    order_id: str,
    body: OrderStatusUpdateRequest,
    service: Service,
    actor: Annotated[Actor, Depends(require_seller)],
    currency: Currency,
) -> OrderResponse:
    """Move an order to a new status.

    Setting ``cancelled`` behaves exactly like the cancel endpoint.
    """
    result = await service.set_order_status(order_id, body.status, note=body.note, actor=actor)
    return _order_response(result, currency)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    responses={
        **_ORDER_ERRORS,
        409: {"model": ErrorResponse, "description": "Order cannot be cancelled"},
    },
)
async def cancel_order(
    order_id: str,
    service: Service,
    actor: Annotated[Actor, Depends(get_actor)],
    currency: Currency,
    body: OrderCancelRequest | None = None,
) -> OrderResponse:
    """Cancel an order and return its stock to the catalog."""
    reason = body.reason if body else None
    return _order_response(await service.cancel_order(order_id, reason=reason, actor=actor), currency)


@router.post(
    "/{order_id}/rating",
    response_model=RateOrderResponse,
    responses={
        **_ORDER_ERRORS,
        400: {"model": ErrorResponse, "description": "Rating outside 1..5"},
        409: {"model": ErrorResponse, "description": "Not delivered or already rated"},
    },
)
async def rate_order(
    order_id: str,
    body: RateOrderRequest,
    service: Service,
    actor: Annotated[Actor, Depends(require_customer)],
    currency: Currency,
) -> RateOrderResponse:
    """Rate a delivered order once."""
    result = await service.rate_order(order_id, body.value, review=body.review, actor=actor)
    if not result.success or result.order is None or result.seller_rating is None:
        raise_for_result(result, "ORDER_ERROR", "Failed to rate order")

    return RateOrderResponse(
        order=order_to_response(result.order, currency),
        seller_rating=seller_rating_to_schema(result.seller_rating),
    )
