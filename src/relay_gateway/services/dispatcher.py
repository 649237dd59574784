"""
Routes inbound WebSocket frames to the gateway services.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from ..core.config import Settings
from ..core.text import to_payload, truncate
from ..models.frames import (
    ACK_CHANNEL,
    DebugLogCommand,
    DeliveryFrame,
    JoinRoomCommand,
    LeaveRoomCommand,
    PublishCommand,
    RelaySignalCommand,
    SubscribeCommand,
    UnsubscribeCommand,
)
from ..protocol.legacy import SignalingFrame
from ..protocol.parser import (
    JsonCommandFrame,
    MalformedFrame,
    SelfTestFrame,
    UnknownCommandFrame,
    parse_frame,
)
from .broker import Broker
from .connection import Connection
from .signaling import SignalingService
from .subscriptions import SubscriptionRegistry

logger = logging.getLogger(__name__)

CommandHandler = Callable[[Connection, Any], Awaitable[None]]


def normalize_log_record(command: DebugLogCommand, client_id: str) -> Dict[str, Any]:
    """
    Build the log record published for a ``debug_log`` command.

    A message that is itself a JSON object (string or structured) becomes the
    record; anything else is wrapped as ``{"message": ...}``. Outer
    ``timestamp``/``stackTrace`` win over values inside the message, and
    ``clientId`` defaults to the sender's connection id.
    """
    message = command.message
    record: Optional[Dict[str, Any]] = None
    if isinstance(message, dict):
        record = dict(message)
    elif isinstance(message, str):
        try:
            decoded = json.loads(message)
        except ValueError:
            decoded = None
        if isinstance(decoded, dict):
            record = decoded
    if record is None:
        record = {"message": message}

    record.pop("command", None)
    record["timestamp"] = (
        command.timestamp
        or record.get("timestamp")
        or datetime.now(timezone.utc).isoformat()
    )
    record["stackTrace"] = command.stack_trace or record.get("stackTrace")
    record.setdefault("clientId", client_id)
    return record


class CommandDispatcher:
    """Parses one frame at a time and applies it on behalf of a connection."""

    def __init__(
        self,
        registry: SubscriptionRegistry,
        broker: Broker,
        signaling: SignalingService,
        config: Settings,
    ):
        self.registry = registry
        self.broker = broker
        self.signaling = signaling
        self.config = config
        self._handlers: Dict[type, CommandHandler] = {
            SubscribeCommand: self._subscribe,
            UnsubscribeCommand: self._unsubscribe,
            PublishCommand: self._publish,
            DebugLogCommand: self._debug_log,
            JoinRoomCommand: self.signaling.join_room,
            LeaveRoomCommand: self._leave_room,
            RelaySignalCommand: self.signaling.relay_signal,
        }

    async def dispatch(self, connection: Connection, raw: str) -> None:
        """
        Handle a single inbound text frame.

        Malformed and unknown frames are logged and dropped; the connection
        stays open. Frames arriving after the connection closed are ignored.
        """
        if not connection.alive:
            return

        frame = parse_frame(raw, self.config.self_test_marker)

        if isinstance(frame, MalformedFrame):
            logger.warning(
                f"Malformed frame from {connection.connection_id}: {frame.reason} "
                f"({truncate(frame.raw, 256)})"
            )
        elif isinstance(frame, SelfTestFrame):
            logger.debug(f"Self-test frame from {connection.connection_id} discarded")
        elif isinstance(frame, UnknownCommandFrame):
            logger.warning(
                f"Unrecognized command {frame.verb!r} from {connection.connection_id}"
            )
        elif isinstance(frame, SignalingFrame):
            await self.signaling.handle_legacy(connection, frame)
        elif isinstance(frame, JsonCommandFrame):
            handler = self._handlers[type(frame.command)]
            await handler(connection, frame.command)

    # =========================================================================
    # Control commands
    # =========================================================================

    async def _subscribe(self, connection: Connection, command: SubscribeCommand) -> None:
        await self.registry.subscribe(connection, command.channel)

    async def _unsubscribe(self, connection: Connection, command: UnsubscribeCommand) -> None:
        await self.registry.unsubscribe(connection, command.channel)

    async def _publish(self, connection: Connection, command: PublishCommand) -> None:
        payload = to_payload(command.message)
        logger.info(
            f"Publishing to [{command.channel}] from {connection.connection_id} -> "
            f"{truncate(payload, self.config.log_truncate_length)}"
        )
        accepted = await self.broker.publish(command.channel, payload, retain=self.config.retain_data)
        if command.needs_ack and accepted:
            ack = DeliveryFrame(channel=ACK_CHANNEL, message=f"Received on [{command.channel}]")
            await connection.deliver(ack.to_json())

    async def _debug_log(self, connection: Connection, command: DebugLogCommand) -> None:
        topic = command.channel or f"{self.config.debug_channel}/logs"
        record = normalize_log_record(command, connection.connection_id)

        limit = self.config.log_truncate_length
        logger.info(f"[{topic}] @ {record['timestamp']}: {truncate(record.get('message'), limit)}")
        if record["stackTrace"]:
            logger.debug(f"Stack trace:\n{truncate(record['stackTrace'], limit)}")

        await self.broker.publish(topic, json.dumps(record), retain=self.config.retain_logs)

    async def _leave_room(self, connection: Connection, command: LeaveRoomCommand) -> None:
        await self.signaling.leave_room(connection)
