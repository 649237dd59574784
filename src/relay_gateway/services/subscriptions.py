"""
Subscription registry: which connection wants which topic.

Membership changes are synchronous and never span an await, so they are
atomic on the event loop. Broker-level subscriptions are reference counted
and reconciled afterwards, one topic at a time, under a per-topic lock that
guards only the broker call.
"""
import asyncio
import logging
from typing import Dict, List, Set
from weakref import WeakValueDictionary

from ..models.frames import DeliveryFrame
from .broker import Broker
from .connection import Connection, deliver_all

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """Maps live connections to topics and fans broker publishes out to them."""

    def __init__(self, broker: Broker):
        self._broker = broker
        # topic -> connection_id -> connection (insertion ordered)
        self._subscribers: Dict[str, Dict[str, Connection]] = {}
        # connection_id -> topics
        self._topics: Dict[str, Set[str]] = {}
        # Topics with an established broker subscription
        self._broker_topics: Set[str] = set()
        self._broker_locks: "WeakValueDictionary[str, asyncio.Lock]" = WeakValueDictionary()
        # topic -> ids of new subscribers still waiting on the retained lookup,
        # mapped to whether a live delivery reached them in the meantime
        self._awaiting_retained: Dict[str, Dict[str, bool]] = {}

    # =========================================================================
    # Synchronous state
    # =========================================================================

    def add(self, connection: Connection, topic: str) -> bool:
        """Record (connection, topic). Returns False if it already existed."""
        subscribers = self._subscribers.setdefault(topic, {})
        if connection.connection_id in subscribers:
            return False
        subscribers[connection.connection_id] = connection
        self._topics.setdefault(connection.connection_id, set()).add(topic)
        return True

    def discard(self, connection: Connection, topic: str) -> bool:
        """Remove (connection, topic). Returns False if it was absent."""
        subscribers = self._subscribers.get(topic)
        if not subscribers or subscribers.pop(connection.connection_id, None) is None:
            return False
        if not subscribers:
            del self._subscribers[topic]

        topics = self._topics.get(connection.connection_id)
        if topics is not None:
            topics.discard(topic)
            if not topics:
                del self._topics[connection.connection_id]
        return True

    def drop_connection(self, connection: Connection) -> List[str]:
        """Remove every subscription of a connection; returns the topics it held."""
        topics = sorted(self._topics.pop(connection.connection_id, set()))
        for topic in topics:
            subscribers = self._subscribers.get(topic)
            if subscribers is None:
                continue
            subscribers.pop(connection.connection_id, None)
            if not subscribers:
                del self._subscribers[topic]
        return topics

    def subscribers(self, topic: str) -> List[Connection]:
        return list(self._subscribers.get(topic, {}).values())

    def topics_for(self, connection: Connection) -> List[str]:
        return sorted(self._topics.get(connection.connection_id, set()))

    def is_subscribed(self, connection: Connection, topic: str) -> bool:
        return connection.connection_id in self._subscribers.get(topic, {})

    @property
    def topic_count(self) -> int:
        return len(self._subscribers)

    @property
    def broker_topics(self) -> Set[str]:
        return set(self._broker_topics)

    # =========================================================================
    # Operations with broker I/O
    # =========================================================================

    async def subscribe(self, connection: Connection, topic: str) -> bool:
        """
        Subscribe a connection to a topic.

        Idempotent: a repeated subscribe changes no local state, but retries
        the broker subscription if an earlier attempt failed. A retained
        payload, if the broker holds one, is sent to the new subscriber only,
        and only if no live publish reached it while the lookup was running.

        Returns:
            True if a new subscription was created
        """
        if not self.add(connection, topic):
            logger.debug(f"{connection.connection_id} already subscribed to [{topic}]")
            await self.reconcile(topic)
            return False

        logger.info(f"{connection.connection_id} subscribed to [{topic}]")
        awaiting = self._awaiting_retained.setdefault(topic, {})
        awaiting[connection.connection_id] = False
        try:
            await self.reconcile(topic)
            retained = await self._broker.get_retained(topic)
        finally:
            live_seen = awaiting.pop(connection.connection_id, False)
            if not awaiting and self._awaiting_retained.get(topic) is awaiting:
                del self._awaiting_retained[topic]

        if retained is None or not self.is_subscribed(connection, topic):
            return True
        if live_seen:
            logger.debug(f"Skipped retained [{topic}] for {connection.connection_id}: live value already sent")
            return True
        await connection.deliver(DeliveryFrame(channel=topic, message=retained).to_json())
        return True

    async def unsubscribe(self, connection: Connection, topic: str) -> bool:
        """Remove a subscription; no-op if absent. Returns True if one was removed."""
        if not self.discard(connection, topic):
            logger.debug(f"{connection.connection_id} was not subscribed to [{topic}]")
            return False

        logger.info(f"{connection.connection_id} unsubscribed from [{topic}]")
        await self.reconcile(topic)
        return True

    async def reconcile(self, topic: str) -> None:
        """Bring the broker subscription for a topic in line with local interest."""
        lock = self._broker_locks.get(topic)
        if lock is None:
            lock = asyncio.Lock()
            self._broker_locks[topic] = lock

        async with lock:
            wanted = topic in self._subscribers
            if wanted and topic not in self._broker_topics:
                if await self._broker.subscribe(topic):
                    self._broker_topics.add(topic)
            elif not wanted and topic in self._broker_topics:
                await self._broker.unsubscribe(topic)
                self._broker_topics.discard(topic)

    async def fan_out(self, topic: str, payload: str) -> int:
        """
        Deliver a broker publish to every connection subscribed to the topic.

        Returns:
            Number of connections that received it
        """
        targets = self.subscribers(topic)
        if not targets:
            return 0
        awaiting = self._awaiting_retained.get(topic)
        if awaiting:
            for connection in targets:
                if connection.connection_id in awaiting:
                    awaiting[connection.connection_id] = True
        frame = DeliveryFrame(channel=topic, message=payload).to_json()
        delivered = await deliver_all(targets, frame)
        logger.debug(f"Broker -> WS: [{topic}] delivered to {delivered}/{len(targets)} connection(s)")
        return delivered
