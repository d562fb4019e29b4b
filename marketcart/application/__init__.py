"""Application layer module.

Contains application services (use cases) that orchestrate
domain logic and infrastructure.
"""

from marketcart.application.cart_service import CartRepository, CartService
from marketcart.application.checkout_service import CheckoutService
from marketcart.application.order_service import OrderRepository, OrderService

__all__ = [
    "CartRepository",
    "CartService",
    "CheckoutService",
    "OrderRepository",
    "OrderService",
]
