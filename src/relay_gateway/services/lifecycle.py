"""
Connection lifecycle: open, track and tear down client sockets.
"""
import asyncio
import logging
from typing import Dict, List, Optional, Set

from .connection import Connection, SendCallable
from .rooms import LeaveResult
from .signaling import SignalingService
from .subscriptions import SubscriptionRegistry

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Owns the set of live connections.

    ``close`` is idempotent and is the single teardown path for clean
    closes and I/O failures alike.
    """

    def __init__(self, registry: SubscriptionRegistry, signaling: SignalingService):
        self.registry = registry
        self.signaling = signaling
        self._connections: Dict[str, Connection] = {}
        self._releasing: Set["asyncio.Task[None]"] = set()

    def open(self, send: SendCallable) -> Connection:
        """Register a new connection that sends frames through ``send``."""
        connection = Connection(send=send)
        self._connections[connection.connection_id] = connection
        logger.info(f"Client connected: {connection.connection_id} ({len(self)} active)")
        return connection

    async def close(self, connection: Connection) -> None:
        """
        Tear a connection down.

        State is removed synchronously first (subscriptions, room membership
        and peer claim), then the remaining room members are notified and the
        broker subscriptions nobody needs anymore are released. The second
        part runs as its own task and completes even if the caller is
        cancelled.
        """
        if not connection.alive:
            return
        connection.alive = False
        self._connections.pop(connection.connection_id, None)

        topics = self.registry.drop_connection(connection)
        left = self.signaling.directory.release(connection)

        task = asyncio.ensure_future(self._release(connection, left, topics))
        self._releasing.add(task)
        task.add_done_callback(self._releasing.discard)
        await asyncio.shield(task)

    async def _release(
        self,
        connection: Connection,
        left: Optional[LeaveResult],
        topics: List[str],
    ) -> None:
        await self.signaling.notify_left(left)
        for topic in topics:
            await self.registry.reconcile(topic)
        logger.info(f"Client disconnected: {connection.connection_id} ({len(self)} active)")

    async def close_all(self) -> None:
        """Close every connection and wait for pending teardowns."""
        for connection in self.connections():
            await self.close(connection)
        if self._releasing:
            await asyncio.wait(list(self._releasing))

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def connections(self) -> List[Connection]:
        return list(self._connections.values())

    def __len__(self) -> int:
        return len(self._connections)
