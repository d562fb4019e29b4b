"""API middleware for MarketCart.

Provides:
- Request ID correlation
- API key authentication
- Caller identity from the upstream identity headers
- Error handling
"""

import time
from typing import Callable
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from marketcart.domain.value_objects import Actor, ActorRole

logger = structlog.get_logger()


# ============================================================================
# Request ID Middleware
# ============================================================================


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id.

    The id comes from the ``X-Request-ID`` header or is a fresh UUID. It is
    stored on ``request.state``, bound into the structlog context, and
    echoed back on the response so error bodies and logs can be matched.
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid4())
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=getattr(response, "status_code", 500),
                duration_ms=round(duration_ms, 2),
            )
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers[self.HEADER_NAME] = request_id
        return response


# ============================================================================
# API Key Authentication Middleware
# ============================================================================


# Paths that don't require authentication
PUBLIC_PATHS = {
    "/health",
    "/ready",
    "/docs",
    "/redoc",
    "/openapi.json",
}


def _unauthorized(error_code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"error_code": error_code, "message": message, "details": {}},
        headers={"WWW-Authenticate": "Bearer"},
    )


class ApiKeyMiddleware(BaseHTTPMiddleware):
    """Require ``Authorization: Bearer <api_key>`` outside the public paths.

    An empty configured key disables the check, which is the default for
    local development.
    """

    def __init__(self, app: ASGIApp, api_key: str = "") -> None:
        super().__init__(app)
        self.api_key = api_key

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path.rstrip("/")
        if not self.api_key or path in PUBLIC_PATHS or path.startswith(("/docs", "/redoc")):
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if not auth_header:
            logger.warning("Missing authorization header", path=path, method=request.method)
            return _unauthorized("UNAUTHORIZED", "Missing Authorization header")

        parts = auth_header.split(" ", 1)
        if len(parts) != 2 or parts[0].lower() != "bearer":
            logger.warning("Invalid authorization format", path=path, method=request.method)
            return _unauthorized(
                "UNAUTHORIZED",
                "Invalid Authorization header format. Use 'Bearer <api_key>'",
            )

        if parts[1] != self.api_key:
            logger.warning("Invalid API key", path=path, method=request.method)
            return _unauthorized("INVALID_API_KEY", "Invalid API key")

        request.state.authenticated = True
        return await call_next(request)


# ============================================================================
# Identity Middleware
# ============================================================================


class IdentityMiddleware(BaseHTTPMiddleware):
    """Resolve the caller from the identity headers set upstream.

    ``X-Actor-Id`` carries the customer or seller id and ``X-Actor-Role``
    says which; the role defaults to customer. Requests without an id
    get ``request.state.actor = None`` and are rejected by endpoints
    that need a caller.
    """

    ID_HEADER = "X-Actor-Id"
    ROLE_HEADER = "X-Actor-Role"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.actor = None
        actor_id = (request.headers.get(self.ID_HEADER) or "").strip()
        if not actor_id:
            return await call_next(request)

        role_value = (request.headers.get(self.ROLE_HEADER) or ActorRole.CUSTOMER.value).strip().lower()
        try:
            role = ActorRole(role_value)
        except ValueError:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={
                    "error_code": "INVALID_ACTOR_ROLE",
                    "message": f"Unknown actor role '{role_value}'",
                    "details": {"allowed": [r.value for r in ActorRole]},
                    "request_id": getattr(request.state, "request_id", None),
                },
            )

        request.state.actor = Actor(id=actor_id, role=role)
        structlog.contextvars.bind_contextvars(actor_id=actor_id, actor_role=role.value)
        try:
            return await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("actor_id", "actor_role")


# ============================================================================
# Error Handling Middleware
# ============================================================================


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turn anything a handler lets escape into a 500 in the standard error body."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            request_id = getattr(request.state, "request_id", None)
            logger.exception(
                "Unhandled exception",
                path=request.url.path,
                method=request.method,
                error=str(e),
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error_code": "INTERNAL_ERROR",
                    "message": "An internal error occurred",
                    "details": {},
                    "request_id": request_id,
                },
            )


# ============================================================================
# Middleware Setup
# ============================================================================


def setup_middleware(app: FastAPI, api_key: str = "") -> None:
    """Install the middleware stack. The last one added runs first.

    Args:
        app: FastAPI application instance.
        api_key: Expected bearer key; empty disables authentication.
    """
    # Error handling wraps the handlers directly
    app.add_middleware(ErrorHandlerMiddleware)

    app.add_middleware(IdentityMiddleware)

    app.add_middleware(ApiKeyMiddleware, api_key=api_key)

    # Request ID correlation (outermost, so every response carries the header)
    app.add_middleware(RequestIdMiddleware)
