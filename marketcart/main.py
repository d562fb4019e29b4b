"""MarketCart API main application module.

This module builds the FastAPI application and configures
core middleware, routers, exception handlers and startup/shutdown.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from marketcart.api.cart import router as cart_router
from marketcart.api.checkout import router as checkout_router
from marketcart.api.dependencies import Container
from marketcart.api.health import router as health_router
from marketcart.api.middleware import setup_middleware
from marketcart.api.orders import router as orders_router
from marketcart.infrastructure.config import Settings
from marketcart.infrastructure.config import settings as default_settings
from marketcart.infrastructure.logging import configure_logging

logger = structlog.get_logger()


def create_app(container: Container | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the application.

    Args:
        container: Pre-built stores, used by tests. When omitted the
            container is built from ``settings`` at startup and closed
            at shutdown.
        settings: Settings to use; defaults to the environment.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or (container.settings if container else default_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        configure_logging(settings.log_level, json_logs=not settings.debug)
        logger.info(
            "Starting MarketCart API",
            version=settings.api_version,
            debug=settings.debug,
            catalog_backend=settings.catalog_backend,
        )

        owned = container is None
        if owned:
            app.state.container = await Container.from_settings(settings)

        yield

        logger.info("Shutting down MarketCart API")
        if owned:
            await app.state.container.close()

    app = FastAPI(
        title="MarketCart API",
        description="Multi-seller cart, checkout and order lifecycle",
        version=settings.api_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request ID, API key, caller identity, error handling
    setup_middleware(app, api_key=settings.api_key)

    app.include_router(health_router, tags=["Health"])
    app.include_router(cart_router)
    app.include_router(checkout_router)
    app.include_router(orders_router)

    register_exception_handlers(app)
    return app


# ============================================================================
# Custom Exception Handlers
# ============================================================================


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error in the standard error format."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle HTTP exceptions with consistent format."""
        request_id = getattr(request.state, "request_id", None)

        detail = exc.detail
        if isinstance(detail, dict):
            error_code = detail.get("error_code", "ERROR")
            message = detail.get("message", str(detail))
            details = detail.get("details", {})
        else:
            error_code = "ERROR"
            message = str(detail)
            details = {}

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error_code": error_code,
                "message": message,
                "details": details,
                "request_id": request_id,
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle request body and query validation errors."""
        return JSONResponse(
            status_code=422,
            content={
                "error_code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": [
                    {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
                    for err in exc.errors()
                ],
                "request_id": getattr(request.state, "request_id", None),
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions with consistent format."""
        request_id = getattr(request.state, "request_id", None)

        logger.exception(
            "Unhandled exception in handler",
            path=request.url.path,
            method=request.method,
            error=str(exc),
        )

        return JSONResponse(
            status_code=500,
            content={
                "error_code": "INTERNAL_ERROR",
                "message": "An internal error occurred",
                "details": {},
                "request_id": request_id,
            },
        )


app = create_app()
