"""
HTTP request/response models for the Relay Gateway API.
"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class PublishRequest(BaseModel):
    """Request to publish a message through the gateway."""
    channel: str = Field(..., min_length=1, description="Target topic")
    message: Any = Field(..., description="String payload or structured value")
    retain: Optional[bool] = Field(
        default=None,
        description="Override the configured retention policy for data topics",
    )


class PublishResponse(BaseModel):
    """Response after publishing a message."""
    success: bool = Field(..., description="Whether publish succeeded")
    channel: str = Field(..., description="Topic the message was published to")
    message: str = Field(default="", description="Status message")


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Service status")
    adapter: str = Field(..., description="Active adapter type")
    connected: bool = Field(..., description="Whether adapter is connected")
    active_connections: int = Field(..., description="Number of open WebSocket connections")
    rooms: int = Field(..., description="Number of signaling rooms")


class ConnectionInfo(BaseModel):
    """Admin view of a single connection."""
    connection_id: str
    peer_id: Optional[str] = None
    room_id: Optional[str] = None
    topics: List[str] = Field(default_factory=list)


class ConnectionsResponse(BaseModel):
    """Admin listing of open connections."""
    count: int
    connections: List[ConnectionInfo]


class RoomsResponse(BaseModel):
    """Admin listing of signaling rooms and their member ids."""
    count: int
    rooms: Dict[str, List[str]]
