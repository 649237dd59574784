"""
Signaling relay over the room directory.

Handles both wire formats: legacy pipe-delimited frames are relayed verbatim,
JSON signaling commands are answered with JSON notifications. Every handler
validates first, mutates the directory second and sends last.
"""
import logging
from typing import List, Optional

from ..models.frames import (
    AssignIdFrame,
    JoinedRoomFrame,
    JoinRoomCommand,
    PeerInfo,
    PeerJoinedFrame,
    PeerLeftFrame,
    RelaySignalCommand,
    SignalFrame,
)
from ..protocol.legacy import RELAY_COMMANDS, LegacyCommand, SignalingFrame
from .connection import Connection, deliver_all
from .rooms import BindResult, LeaveResult, RoomDirectory

logger = logging.getLogger(__name__)


def peer_info(connection: Connection) -> PeerInfo:
    return PeerInfo(
        id=connection.connection_id,
        peer_id=connection.peer_id,
        simple_web_rtc_id=connection.peer_id,
    )


class SignalingService:
    """Room-scoped relay of peer-connection negotiation messages."""

    def __init__(self, directory: RoomDirectory, default_room: str = "default"):
        self.directory = directory
        self.default_room = default_room

    # =========================================================================
    # Legacy protocol
    # =========================================================================

    async def handle_legacy(self, connection: Connection, frame: SignalingFrame) -> None:
        """
        Apply a legacy frame.

        NEWPEER joins the default room and announces itself, DISPOSE announces
        and leaves, the rest are relayed to ``targetPeerId`` or, for "ALL", to
        the whole room.
        """
        binding = self.directory.check_peer(connection, frame.sender_peer_id)
        if not binding.accepted:
            logger.warning(
                f"Rejected {frame.command.value} from {connection.connection_id}: "
                f"peer id {frame.sender_peer_id!r} {binding.value}"
            )
            return

        if frame.command is not LegacyCommand.NEWPEER and connection.room_id is None:
            logger.warning(
                f"Rejected {frame.command.value} from {connection.connection_id}: not in a room"
            )
            return

        if binding is BindResult.BOUND:
            self.directory.bind_peer(connection, frame.sender_peer_id)
        connection.legacy = True

        if frame.command is LegacyCommand.NEWPEER:
            result = self.directory.join(connection, self.default_room)
            await self.notify_left(result.left)
            await deliver_all(self.directory.others(connection), frame.raw)
        elif frame.command is LegacyCommand.DISPOSE:
            await deliver_all(self.directory.others(connection), frame.raw)
            # Legacy members already got the DISPOSE relay
            await self.notify_left(self.directory.leave(connection), skip_legacy=True)
        elif frame.command in RELAY_COMMANDS:
            await deliver_all(self._legacy_targets(connection, frame), frame.raw)

    def _legacy_targets(self, connection: Connection, frame: SignalingFrame) -> List[Connection]:
        if frame.is_broadcast:
            return self.directory.others(connection)
        target = self._room_peer(connection, frame.target_peer_id)
        if target is None:
            logger.debug(
                f"Dropped {frame.command.value} from {connection.connection_id}: "
                f"no peer {frame.target_peer_id!r} in room {connection.room_id!r}"
            )
            return []
        return [target]

    # =========================================================================
    # JSON protocol
    # =========================================================================

    async def join_room(self, connection: Connection, command: JoinRoomCommand) -> None:
        """Join a room, tell the joiner who is there and tell them who arrived."""
        announced = command.announced_peer_id
        if announced:
            binding = self.directory.check_peer(connection, announced)
            if not binding.accepted:
                logger.warning(
                    f"Rejected join_room from {connection.connection_id}: "
                    f"peer id {announced!r} {binding.value}"
                )
                return
            self.directory.bind_peer(connection, announced)

        result = self.directory.join(connection, command.room_id)
        if not result.changed:
            logger.debug(f"{connection.connection_id} already in room {command.room_id!r}")
            return

        await self.notify_left(result.left)

        if not connection.id_announced:
            connection.id_announced = True
            await connection.deliver(AssignIdFrame(id=connection.connection_id).to_json())

        joined = JoinedRoomFrame(
            room_id=result.room_id,
            peers=[peer_info(member) for member in result.existing],
        )
        await connection.deliver(joined.to_json())

        info = peer_info(connection)
        announcement = PeerJoinedFrame(
            room_id=result.room_id,
            id=info.id,
            peer_id=info.peer_id,
            simple_web_rtc_id=info.simple_web_rtc_id,
        )
        await deliver_all(result.existing, announcement.to_json())

    async def leave_room(self, connection: Connection) -> None:
        result = self.directory.leave(connection)
        if result is None:
            logger.debug(f"{connection.connection_id} sent leave_room outside any room")
            return
        await self.notify_left(result)

    async def relay_signal(self, connection: Connection, command: RelaySignalCommand) -> None:
        """
        Relay an offer, answer or ICE candidate within the sender's room.

        ``target_id`` (server id) or ``peer_id`` (external id) selects a single
        recipient; without either the whole room except the sender receives it.
        """
        room_id = connection.room_id
        if room_id is None:
            logger.warning(f"Rejected {command.type} from {connection.connection_id}: not in a room")
            return

        if command.target_id:
            target = self.directory.member(room_id, command.target_id)
            targets = [target] if target is not None and target is not connection else []
        elif command.peer_id:
            target = self._room_peer(connection, command.peer_id)
            targets = [target] if target is not None else []
        else:
            targets = self.directory.others(connection)

        if not targets:
            logger.debug(f"Dropped {command.type} from {connection.connection_id}: no recipient")
            return

        frame = SignalFrame(
            type=command.type,
            sender_id=connection.connection_id,
            peer_id=connection.peer_id,
            room_id=room_id,
            payload=command.payload,
        )
        await deliver_all(targets, frame.to_json())

    # =========================================================================
    # Shared
    # =========================================================================

    async def notify_left(self, result: Optional[LeaveResult], skip_legacy: bool = False) -> None:
        """
        Send peer_left to the members remaining after a departure.

        Args:
            result: Outcome of the leave, None if nothing changed
            skip_legacy: Leave out members that speak the legacy protocol
        """
        if result is None or result.room_deleted:
            return
        recipients = [m for m in result.remaining if not (skip_legacy and m.legacy)]
        if not recipients:
            return
        departed = peer_info(result.departed)
        frame = PeerLeftFrame(
            room_id=result.room_id,
            id=departed.id,
            peer_id=departed.peer_id,
            simple_web_rtc_id=departed.simple_web_rtc_id,
        )
        await deliver_all(recipients, frame.to_json())

    def _room_peer(self, connection: Connection, peer_id: str) -> Optional[Connection]:
        """Resolve a peer id, restricted to other members of the sender's room."""
        target = self.directory.resolve(peer_id)
        if target is None or target is connection or target.room_id != connection.room_id:
            return None
        return target
