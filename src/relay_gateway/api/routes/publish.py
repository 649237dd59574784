"""
HTTP publish endpoint.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...models.schemas import PublishRequest, PublishResponse
from ...services.gateway import Gateway
from ..dependencies import get_gateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["Publish"])


@router.post("/publish", response_model=PublishResponse)
async def publish_message(
    request: PublishRequest,
    gateway: Gateway = Depends(get_gateway),
) -> PublishResponse:
    """
    Publish a message to a topic, as a WebSocket ``publish`` command would.

    Args:
        request: Channel, message and optional retain override

    Returns:
        PublishResponse with success status

    Raises:
        HTTPException: 503 if the broker is not connected, 502 if the publish fails
    """
    if not gateway.broker.is_connected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Broker adapter not connected",
        )

    if not await gateway.publish(request.channel, request.message, retain=request.retain):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to publish to {request.channel}",
        )

    logger.info(f"Published to [{request.channel}] via HTTP")
    return PublishResponse(
        success=True,
        channel=request.channel,
        message=f"Message published to {request.channel}",
    )
