"""
Pydantic models for the relay wire protocol and the HTTP API.
"""
from .frames import (
    AssignIdFrame,
    DebugLogCommand,
    DeliveryFrame,
    JoinedRoomFrame,
    JoinRoomCommand,
    LeaveRoomCommand,
    PeerInfo,
    PeerJoinedFrame,
    PeerLeftFrame,
    PublishCommand,
    RelaySignalCommand,
    SignalFrame,
    SubscribeCommand,
    UnsubscribeCommand,
)
from .schemas import (
    ConnectionInfo,
    ConnectionsResponse,
    HealthResponse,
    PublishRequest,
    PublishResponse,
    RoomsResponse,
)

__all__ = [
    "AssignIdFrame",
    "DebugLogCommand",
    "DeliveryFrame",
    "JoinedRoomFrame",
    "JoinRoomCommand",
    "LeaveRoomCommand",
    "PeerInfo",
    "PeerJoinedFrame",
    "PeerLeftFrame",
    "PublishCommand",
    "RelaySignalCommand",
    "SignalFrame",
    "SubscribeCommand",
    "UnsubscribeCommand",
    "ConnectionInfo",
    "ConnectionsResponse",
    "HealthResponse",
    "PublishRequest",
    "PublishResponse",
    "RoomsResponse",
]
