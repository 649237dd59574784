"""
Room & peer directory for signaling.

Pure in-memory state with synchronous mutations. Callers get back the
connections affected by a change and do the socket I/O themselves, after the
mutation has completed.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .connection import Connection, looks_like_server_id

logger = logging.getLogger(__name__)


class BindResult(str, Enum):
    """Outcome of binding an external peer id to a connection."""
    BOUND = "bound"            # new binding (or would be, for check_peer)
    UNCHANGED = "unchanged"    # connection already carries this id
    CONFLICT = "conflict"      # connection is bound to a different id
    IN_USE = "in_use"          # another live connection owns this id
    INVALID = "invalid"        # id looks like a server connection id

    @property
    def accepted(self) -> bool:
        return self in (BindResult.BOUND, BindResult.UNCHANGED)


@dataclass
class LeaveResult:
    room_id: str
    departed: Connection
    remaining: List[Connection] = field(default_factory=list)

    @property
    def room_deleted(self) -> bool:
        return not self.remaining


@dataclass
class JoinResult:
    room_id: str
    changed: bool
    existing: List[Connection] = field(default_factory=list)
    left: Optional[LeaveResult] = None


class RoomDirectory:
    """
    Signaling rooms plus the peer-id mapping used for targeted relay.

    Invariants:
    - a connection is in at most one room; empty rooms do not exist
    - a peer id is claimed by at most one live connection
    - only connections currently in a room resolve through ``resolve``
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Dict[str, Connection]] = {}
        # Peer ids of connections currently in a room
        self._peers: Dict[str, Connection] = {}
        # Every peer id bound to a live connection
        self._claims: Dict[str, Connection] = {}

    # =========================================================================
    # Peer identifiers
    # =========================================================================

    def check_peer(self, connection: Connection, peer_id: str) -> BindResult:
        """Evaluate a binding without changing any state."""
        if looks_like_server_id(peer_id):
            return BindResult.INVALID
        if connection.peer_id == peer_id:
            return BindResult.UNCHANGED
        if connection.peer_id is not None:
            return BindResult.CONFLICT
        owner = self._claims.get(peer_id)
        if owner is not None and owner is not connection:
            return BindResult.IN_USE
        return BindResult.BOUND

    def bind_peer(self, connection: Connection, peer_id: str) -> BindResult:
        """Bind ``peer_id`` to the connection if check_peer allows it."""
        result = self.check_peer(connection, peer_id)
        if result is not BindResult.BOUND:
            return result

        connection.peer_id = peer_id
        self._claims[peer_id] = connection
        if connection.room_id is not None:
            self._peers[peer_id] = connection
        logger.info(f"Bound peer id {peer_id!r} to {connection.connection_id}")
        return result

    def resolve(self, peer_id: str) -> Optional[Connection]:
        """Return the in-room connection bound to ``peer_id``, if any."""
        return self._peers.get(peer_id)

    # =========================================================================
    # Rooms
    # =========================================================================

    def join(self, connection: Connection, room_id: str) -> JoinResult:
        """
        Put a connection in a room, leaving its previous room first.

        Joining the room the connection is already in changes nothing.
        """
        if connection.room_id == room_id:
            return JoinResult(room_id=room_id, changed=False, existing=self.others(connection))

        left = self.leave(connection)
        members = self._rooms.setdefault(room_id, {})
        existing = list(members.values())
        members[connection.connection_id] = connection
        connection.room_id = room_id
        if connection.peer_id is not None:
            self._peers[connection.peer_id] = connection

        logger.info(f"{connection.connection_id} joined room {room_id!r} ({len(members)} member(s))")
        return JoinResult(room_id=room_id, changed=True, existing=existing, left=left)

    def leave(self, connection: Connection) -> Optional[LeaveResult]:
        """
        Take a connection out of its room. No-op (None) if it is in none.

        The room is deleted when its last member leaves.
        """
        room_id = connection.room_id
        if room_id is None:
            return None

        members = self._rooms.get(room_id, {})
        members.pop(connection.connection_id, None)
        if not members:
            self._rooms.pop(room_id, None)
            logger.info(f"Room {room_id!r} is empty and was removed")

        if connection.peer_id is not None and self._peers.get(connection.peer_id) is connection:
            del self._peers[connection.peer_id]
        connection.room_id = None

        logger.info(f"{connection.connection_id} left room {room_id!r}")
        return LeaveResult(room_id=room_id, departed=connection, remaining=list(members.values()))

    def release(self, connection: Connection) -> Optional[LeaveResult]:
        """Drop every trace of a closing connection: room, mapping and claim."""
        result = self.leave(connection)
        if connection.peer_id is not None and self._claims.get(connection.peer_id) is connection:
            del self._claims[connection.peer_id]
        return result

    def members(self, room_id: str) -> List[Connection]:
        return list(self._rooms.get(room_id, {}).values())

    def member(self, room_id: str, connection_id: str) -> Optional[Connection]:
        return self._rooms.get(room_id, {}).get(connection_id)

    def others(self, connection: Connection) -> List[Connection]:
        """Members of the connection's room, excluding the connection itself."""
        if connection.room_id is None:
            return []
        return [c for c in self.members(connection.room_id) if c is not connection]

    def snapshot(self) -> Dict[str, List[str]]:
        """Room id -> member connection ids."""
        return {room_id: list(members) for room_id, members in self._rooms.items()}

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)
