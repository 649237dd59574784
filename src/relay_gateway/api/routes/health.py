"""
Health endpoint.
"""
from fastapi import APIRouter, Depends

from ...models.schemas import HealthResponse
from ...services.gateway import Gateway
from ..dependencies import get_gateway

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(gateway: Gateway = Depends(get_gateway)) -> HealthResponse:
    """
    Health check endpoint.

    Returns service status, adapter connection state and connection/room counts.
    """
    connected = gateway.broker.is_connected
    return HealthResponse(
        status="healthy" if connected else "degraded",
        adapter=gateway.broker.name,
        connected=connected,
        active_connections=len(gateway.connections),
        rooms=len(gateway.rooms),
    )
