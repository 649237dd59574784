"""
In-memory adapter for the Relay Gateway.

This adapter is primarily used for:
- Local development without a running broker
- Unit testing
- Demo purposes

Retained payloads live in a dict for the life of the process and are
delivered to subscribers synchronously.
"""
import logging
from typing import Dict, Optional, Set

from .base import BrokerAdapter, is_system_topic

logger = logging.getLogger(__name__)


class MemoryAdapter(BrokerAdapter):
    """
    In-memory broker adapter for development and testing.

    Features:
    - Exact topic matching (no wildcards)
    - Retained payloads (last retained publish per topic)
    - Synchronous delivery (handler awaited inside publish)
    """

    def __init__(self):
        """Initialize the memory adapter."""
        super().__init__()
        self._connected = False
        self._topics: Set[str] = set()
        self._retained: Dict[str, str] = {}

    async def connect(self) -> None:
        """Mark adapter as connected."""
        if self._connected:
            logger.warning("Memory adapter already connected")
            return

        self._connected = True
        logger.info("Memory adapter connected (in-memory mode)")

    async def disconnect(self) -> None:
        """Disconnect and clean up subscriptions."""
        self._topics.clear()
        self._connected = False
        logger.info("Memory adapter disconnected")

    async def publish(self, topic: str, payload: str, retain: bool = False) -> None:
        """
        Publish a payload, storing it first when retained.

        Args:
            topic: The topic to publish to
            payload: The message payload
            retain: Keep the payload for later subscribers
        """
        if not self._connected:
            raise ConnectionError("Memory adapter not connected")

        logger.debug(f"Publishing to topic: {topic} (retain={retain})")

        if retain and not is_system_topic(topic):
            self._retained[topic] = payload

        if topic not in self._topics:
            logger.debug(f"No subscribers for topic: {topic}")
            return

        try:
            await self._dispatch(topic, payload)
        except Exception as e:
            logger.error(f"Handler error for topic {topic}: {e}")

    async def subscribe(self, topic: str) -> None:
        """Subscribe to an exact topic."""
        if not self._connected:
            raise ConnectionError("Memory adapter not connected")

        if topic in self._topics:
            return
        self._topics.add(topic)
        logger.info(f"Subscribed to {topic}")

    async def unsubscribe(self, topic: str) -> None:
        """Unsubscribe from a topic."""
        if topic not in self._topics:
            logger.warning(f"Subscription {topic} not found")
            return

        self._topics.discard(topic)
        logger.info(f"Unsubscribed: {topic}")

    async def get_retained(self, topic: str) -> Optional[str]:
        """Return the last retained payload for a topic."""
        if not self._connected:
            raise ConnectionError("Memory adapter not connected")
        return self._retained.get(topic)

    @property
    def is_connected(self) -> bool:
        """Check if adapter is connected."""
        return self._connected

    @property
    def subscribed_topics(self) -> Set[str]:
        """Topics with an active broker-level subscription."""
        return set(self._topics)
