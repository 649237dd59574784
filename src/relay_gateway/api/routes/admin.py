"""
Admin/debug endpoints (protect in production).
"""
from fastapi import APIRouter, Depends

from ...models.schemas import ConnectionInfo, ConnectionsResponse, RoomsResponse
from ...services.gateway import Gateway
from ..dependencies import get_gateway

router = APIRouter(prefix="/v1/admin", tags=["Admin"])


@router.get("/connections", response_model=ConnectionsResponse)
async def list_connections(gateway: Gateway = Depends(get_gateway)) -> ConnectionsResponse:
    """List open WebSocket connections with their peer id, room and topics."""
    connections = [
        ConnectionInfo(
            connection_id=connection.connection_id,
            peer_id=connection.peer_id,
            room_id=connection.room_id,
            topics=gateway.registry.topics_for(connection),
        )
        for connection in gateway.connections.connections()
    ]
    return ConnectionsResponse(count=len(connections), connections=connections)


@router.get("/rooms", response_model=RoomsResponse)
async def list_rooms(gateway: Gateway = Depends(get_gateway)) -> RoomsResponse:
    """List signaling rooms and the connection ids in each."""
    rooms = gateway.rooms.snapshot()
    return RoomsResponse(count=len(rooms), rooms=rooms)
