"""
Live WebSocket connection as seen by the gateway services.
"""
import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, List, Optional
from uuid import uuid4

logger = logging.getLogger(__name__)

SendCallable = Callable[[str], Awaitable[None]]

SERVER_ID_PREFIX = "conn-"
_SERVER_ID_PATTERN = re.compile(r"^conn-[0-9a-f]{32}$", re.IGNORECASE)


def new_connection_id() -> str:
    return f"{SERVER_ID_PREFIX}{uuid4().hex}"


def looks_like_server_id(value: str) -> bool:
    """True if ``value`` has the shape of a server-assigned connection id."""
    return bool(_SERVER_ID_PATTERN.match(value))


@dataclass(eq=False)
class Connection:
    """
    One open client socket.

    Instances hash by identity so they can live in sets and dict values of the
    registry and the room directory. ``peer_id`` is bound at most once;
    ``room_id`` is maintained by the RoomDirectory only. ``legacy`` marks
    connections that speak the pipe-delimited signaling protocol.
    """
    send: SendCallable
    connection_id: str = field(default_factory=new_connection_id)
    peer_id: Optional[str] = None
    room_id: Optional[str] = None
    alive: bool = True
    id_announced: bool = False
    legacy: bool = False

    async def deliver(self, text: str) -> bool:
        """Send a frame; failures are logged and reported, never raised."""
        if not self.alive:
            return False
        try:
            await self.send(text)
            return True
        except Exception as e:
            logger.warning(f"Send to {self.connection_id} failed: {e}")
            return False


async def deliver_all(connections: Iterable[Connection], text: str) -> int:
    """
    Send the same frame to several connections concurrently.

    Returns:
        Number of successful deliveries
    """
    targets: List[Connection] = list(connections)
    if not targets:
        return 0
    results = await asyncio.gather(*(c.deliver(text) for c in targets))
    return sum(1 for ok in results if ok)
