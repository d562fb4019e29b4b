"""Mapping from service error codes to HTTP errors."""

from typing import Any, NoReturn

from fastapi import HTTPException, status

# Validation errors
_BAD_REQUEST = {
    "INVALID_ID",
    "INVALID_QUANTITY",
    "INVALID_STATUS",
    "INVALID_RATING",
    "INVALID_DELIVERY_ADDRESS",
}

_NOT_FOUND = {
    "ORDER_NOT_FOUND",
    "PRODUCT_NOT_FOUND",
    "LINE_NOT_FOUND",
    "SELLER_NOT_FOUND",
}

# Business rule violations
_CONFLICT = {
    "EMPTY_CART",
    "NO_VALID_ITEMS",
    "NOT_CANCELLABLE",
    "ALREADY_RATED",
    "NOT_DELIVERED_YET",
    "INSUFFICIENT_STOCK",
    "INVALID_TRANSITION",
    "PRODUCT_UNAVAILABLE",
    "CONCURRENT_MODIFICATION",
}

# Transient failures, safe to retry as a whole
_UNAVAILABLE = {
    "CATALOG_UNAVAILABLE",
    "CHECKOUT_FAILED",
    "ORDER_UPDATE_FAILED",
    "DUPLICATE_ORDER_NUMBER",
}


def status_for(error_code: str | None) -> int:
    """HTTP status code for a service error code."""
    if error_code in _BAD_REQUEST:
        return status.HTTP_400_BAD_REQUEST
    if error_code in _NOT_FOUND:
        return status.HTTP_404_NOT_FOUND
    if error_code == "FORBIDDEN":
        return status.HTTP_403_FORBIDDEN
    if error_code in _CONFLICT:
        return status.HTTP_409_CONFLICT
    if error_code in _UNAVAILABLE:
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_400_BAD_REQUEST


def raise_for_result(result: Any, default_code: str, default_message: str) -> NoReturn:
    """Raise the HTTPException matching a failed service result.

    Args:
        result: Service result with ``error_code``, ``error`` and ``details``.
        default_code: Code used when the result carries none.
        default_message: Message used when the result carries none.

    Raises:
        HTTPException: Always.
    """
    error_code = result.error_code or default_code
    raise HTTPException(
        status_code=status_for(error_code),
        detail={
            "error_code": error_code,
            "message": result.error or default_message,
            "details": getattr(result, "details", None) or {},
        },
    )
