"""Shared fixtures for service tests."""

import pytest
from factories import RecordingPublisher, seed_catalog

from marketcart.application.cart_service import CartRepository, CartService
from marketcart.application.checkout_service import CheckoutService
from marketcart.application.order_service import OrderRepository, OrderService
from marketcart.catalog.store import InMemoryCatalogStore


@pytest.fixture
def catalog() -> InMemoryCatalogStore:
    """In-memory catalog with the standard sellers and products."""
    store = InMemoryCatalogStore()
    seed_catalog(store)
    return store


@pytest.fixture
def notifier() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def cart_repo() -> CartRepository:
    return CartRepository()


@pytest.fixture
def order_repo() -> OrderRepository:
    return OrderRepository()


@pytest.fixture
def cart_service(catalog: InMemoryCatalogStore, cart_repo: CartRepository) -> CartService:
    return CartService(catalog, cart_repo)


@pytest.fixture
def checkout_service(
    catalog: InMemoryCatalogStore,
    cart_repo: CartRepository,
    order_repo: OrderRepository,
    notifier: RecordingPublisher,
) -> CheckoutService:
    return CheckoutService(catalog, cart_repo, order_repo, notifier)


@pytest.fixture
def order_service(
    catalog: InMemoryCatalogStore,
    order_repo: OrderRepository,
    notifier: RecordingPublisher,
) -> OrderService:
    return OrderService(order_repo, catalog, notifier)
