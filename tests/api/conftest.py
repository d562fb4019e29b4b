"""Fixtures for API tests."""

from collections.abc import Iterator

import pytest
from factories import RecordingPublisher
from fastapi.testclient import TestClient

from marketcart.api.dependencies import Container
from marketcart.catalog.store import InMemoryCatalogStore
from marketcart.infrastructure.config import Settings
from marketcart.main import create_app


@pytest.fixture
def container(catalog: InMemoryCatalogStore, notifier: RecordingPublisher) -> Container:
    """Container over the seeded in-memory catalog."""
    settings = Settings(api_key="", notification_webhook_url=None, catalog_backend="memory")
    return Container(settings=settings, catalog=catalog, notifier=notifier)


@pytest.fixture
def client(container: Container) -> Iterator[TestClient]:
    """Create test client."""
    with TestClient(create_app(container=container)) as test_client:
        yield test_client
