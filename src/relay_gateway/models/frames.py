"""
JSON frame DTOs for the relay WebSocket protocol.

Inbound control commands carry their verb in ``command``; signaling commands
carry it in ``type`` (``command`` is accepted too). Field names are snake_case
in Python and camelCase on the wire.
"""
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class FrameDTO(BaseModel):
    """
    Base configuration for all frames.

    - Aliases are generated in camelCase for JSON serialization.
    - Allows population by field name (snake_case) in Python code.
    - Unknown fields are ignored so newer clients stay compatible.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json(self) -> str:
        """Serialize with wire aliases, omitting unset optional fields."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


# =============================================================================
# Inbound control commands
# =============================================================================


class SubscribeCommand(FrameDTO):
    """Ask to receive broker publishes on a topic."""
    command: Literal["subscribe"]
    channel: str = Field(..., min_length=1, description="Topic to subscribe to")


class UnsubscribeCommand(FrameDTO):
    """Stop receiving broker publishes on a topic."""
    command: Literal["unsubscribe"]
    channel: str = Field(..., min_length=1, description="Topic to unsubscribe from")


class PublishCommand(FrameDTO):
    """Publish a message to a topic."""
    command: Literal["publish"]
    channel: str = Field(..., min_length=1, description="Target topic")
    message: Any = Field(..., description="String payload or structured value")
    needs_ack: bool = Field(default=False, description="Reply on the ack channel once published")


class DebugLogCommand(FrameDTO):
    """Client log entry to be relayed to a log topic."""
    command: Literal["debug_log"]
    channel: Optional[str] = Field(default=None, description="Log topic")
    message: Any = Field(default="", description="Log message or JSON-encoded record")
    timestamp: Optional[str] = Field(default=None, description="Client-side timestamp")
    stack_trace: Optional[str] = Field(default=None, description="Optional stack trace")


ControlCommand = Annotated[
    Union[SubscribeCommand, UnsubscribeCommand, PublishCommand, DebugLogCommand],
    Field(discriminator="command"),
]


# =============================================================================
# Inbound signaling commands
# =============================================================================


class JoinRoomCommand(FrameDTO):
    """Join a signaling room, optionally announcing an external peer id."""
    type: Literal["join_room"]
    room_id: str = Field(..., min_length=1, description="Room to join")
    peer_id: Optional[str] = Field(default=None, description="External peer id")
    simple_web_rtc_id: Optional[str] = Field(
        default=None,
        alias="simpleWebRTCId",
        description="External peer id (SimpleWebRTC naming)",
    )

    @property
    def announced_peer_id(self) -> Optional[str]:
        return self.peer_id or self.simple_web_rtc_id


class LeaveRoomCommand(FrameDTO):
    """Leave the current signaling room."""
    type: Literal["leave_room"]


class RelaySignalCommand(FrameDTO):
    """Offer, answer or ICE candidate for one peer or the whole room."""
    type: Literal["offer", "answer", "ice_candidate"]
    payload: Any = Field(default=None, description="Opaque negotiation payload")
    target_id: Optional[str] = Field(default=None, description="Server id of the target")
    peer_id: Optional[str] = Field(default=None, description="External peer id of the target")


SignalingCommand = Annotated[
    Union[JoinRoomCommand, LeaveRoomCommand, RelaySignalCommand],
    Field(discriminator="type"),
]

control_command_adapter: TypeAdapter = TypeAdapter(ControlCommand)
signaling_command_adapter: TypeAdapter = TypeAdapter(SignalingCommand)

CONTROL_VERBS = frozenset({"subscribe", "unsubscribe", "publish", "debug_log"})
SIGNALING_VERBS = frozenset({"join_room", "leave_room", "offer", "answer", "ice_candidate"})


# =============================================================================
# Outbound frames
# =============================================================================


ACK_CHANNEL = "ack"


class DeliveryFrame(FrameDTO):
    """Broker publish forwarded to a subscribed connection."""
    channel: str
    message: str


class PeerInfo(FrameDTO):
    """A room member as seen by other members."""
    id: str = Field(..., description="Server-assigned connection id")
    peer_id: Optional[str] = None
    simple_web_rtc_id: Optional[str] = Field(default=None, alias="simpleWebRTCId")


class AssignIdFrame(FrameDTO):
    """Tells a connection its server-assigned id."""
    type: Literal["assign_id"] = "assign_id"
    id: str


class JoinedRoomFrame(FrameDTO):
    """Sent to the joiner with the members already present."""
    type: Literal["joined_room"] = "joined_room"
    room_id: str
    peers: List[PeerInfo] = Field(default_factory=list)


class PeerJoinedFrame(PeerInfo):
    """Sent to existing members when a connection joins."""
    type: Literal["peer_joined"] = "peer_joined"
    room_id: str


class PeerLeftFrame(PeerInfo):
    """Sent to remaining members when a connection leaves or disconnects."""
    type: Literal["peer_left"] = "peer_left"
    room_id: str


class SignalFrame(FrameDTO):
    """Offer, answer or ICE candidate relayed to a room member."""
    type: Literal["offer", "answer", "ice_candidate"]
    sender_id: str
    peer_id: Optional[str] = Field(default=None, description="Sender's external peer id")
    room_id: str
    payload: Any = None
