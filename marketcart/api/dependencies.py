"""Service wiring for the API.

The container holds the process-wide stores and publisher; request
handlers get services built on top of it through FastAPI dependencies.
"""

from dataclasses import dataclass, field
from typing import Annotated

import structlog
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from marketcart.application.cart_service import CartRepository, CartService
from marketcart.application.checkout_service import CheckoutService
from marketcart.application.order_service import OrderRepository, OrderService
from marketcart.catalog.repository import SqlCatalogStore
from marketcart.catalog.store import CatalogStore, InMemoryCatalogStore
from marketcart.domain.value_objects import Actor
from marketcart.infrastructure.config import Settings
from marketcart.infrastructure.database import create_engine, create_session_factory, create_tables
from marketcart.infrastructure.notifications import (
    LoggingNotificationPublisher,
    NotificationPublisher,
    WebhookNotificationPublisher,
)

logger = structlog.get_logger()


# ============================================================================
# Container
# ============================================================================


@dataclass
class Container:
    """Process-wide stores shared by all requests."""

    settings: Settings
    catalog: CatalogStore
    notifier: NotificationPublisher
    cart_repo: CartRepository = field(default_factory=CartRepository)
    order_repo: OrderRepository = field(default_factory=OrderRepository)
    engine: AsyncEngine | None = None

    @classmethod
    async def from_settings(cls, settings: Settings) -> "Container":
        """Build the container the settings describe.

        Args:
            settings: Application settings.

        Returns:
            Container with the configured catalog backend and notifier.
        """
        engine = None
        if settings.catalog_backend == "sql":
            engine = create_engine(settings.database_url, echo=settings.debug)
            await create_tables(engine)
            catalog: CatalogStore = SqlCatalogStore(create_session_factory(engine))
        else:
            catalog = InMemoryCatalogStore()

        if settings.notification_webhook_url:
            notifier: NotificationPublisher = WebhookNotificationPublisher(
                webhook_url=settings.notification_webhook_url,
                webhook_secret=settings.notification_webhook_secret,
                timeout_seconds=settings.notification_timeout_seconds,
            )
        else:
            notifier = LoggingNotificationPublisher()

        logger.info(
            "Container initialized",
            catalog_backend=settings.catalog_backend,
            notifier=type(notifier).__name__,
        )
        return cls(settings=settings, catalog=catalog, notifier=notifier, engine=engine)

    async def is_ready(self) -> bool:
        """Check that the catalog backend answers."""
        if self.engine is None:
            return True
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Readiness check failed", error=str(e))
            return False

    async def close(self) -> None:
        await self.notifier.close()
        await self.catalog.close()
        if self.engine is not None:
            await self.engine.dispose()

    def cart_service(self) -> CartService:
        return CartService(self.catalog, self.cart_repo)

    def checkout_service(self) -> CheckoutService:
        return CheckoutService(
            self.catalog,
            self.cart_repo,
            self.order_repo,
            self.notifier,
            order_number_prefix=self.settings.order_number_prefix,
        )

    def order_service(self) -> OrderService:
        return OrderService(
            self.order_repo,
            self.catalog,
            self.notifier,
            default_page_size=self.settings.default_page_size,
            max_page_size=self.settings.max_page_size,
        )


# ============================================================================
# Dependencies
# ============================================================================


def get_container(request: Request) -> Container:
    """Get the container attached to the application."""
    return request.app.state.container


def get_cart_service(container: Annotated[Container, Depends(get_container)]) -> CartService:
    return container.cart_service()


def get_checkout_service(container: Annotated[Container, Depends(get_container)]) -> CheckoutService:
    return container.checkout_service()


def get_order_service(container: Annotated[Container, Depends(get_container)]) -> OrderService:
    return container.order_service()


def get_currency(container: Annotated[Container, Depends(get_container)]) -> str:
    return container.settings.currency


def get_actor(request: Request) -> Actor:
    """Get the caller identified by the identity middleware.

    Raises:
        HTTPException: 401 if the request carries no identity.
    """
    actor = getattr(request.state, "actor", None)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "UNAUTHENTICATED",
                "message": "Missing X-Actor-Id header",
                "details": {},
            },
        )
    return actor


def require_customer(actor: Annotated[Actor, Depends(get_actor)]) -> Actor:
    """Allow only customers."""
    if not actor.is_customer:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error_code": "FORBIDDEN",
                "message": "This endpoint is for customers",
                "details": {"role": actor.role.value},
            },
        )
    return actor


def require_seller(actor: Annotated[Actor, Depends(get_actor)]) -> Actor:
    """Allow only sellers."""
    if not actor.is_seller:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error_code": "FORBIDDEN",
                "message": "This endpoint is for sellers",
                "details": {"role": actor.role.value},
            },
        )
    return actor
