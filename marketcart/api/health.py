"""Health check endpoints.

Provides endpoints for monitoring service health and readiness.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from marketcart.api.dependencies import Container, get_container

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    service: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check(container: Annotated[Container, Depends(get_container)]) -> HealthResponse:
    """Check service health.

    Returns:
        Health status with service name and version.
    """
    return HealthResponse(
        status="healthy",
        service="marketcart",
        version=container.settings.api_version,
    )


@router.get("/ready")
async def readiness_check(container: Annotated[Container, Depends(get_container)]) -> JSONResponse:
    """Check if service is ready to accept requests.

    Returns:
        Readiness status; 503 while the catalog backend is unreachable.
    """
    if await container.is_ready():
        return JSONResponse(status_code=200, content={"status": "ready"})
    return JSONResponse(status_code=503, content={"status": "not_ready"})
