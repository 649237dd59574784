"""
NATS adapter for the Relay Gateway.

This adapter implements the BrokerAdapter interface using NATS Core for live
delivery and a JetStream stream as the retained-message store.
"""
import logging
from typing import Dict, Optional
from urllib.parse import quote, unquote

import nats
from nats.aio.client import Client as NatsClient
from nats.aio.msg import Msg
from nats.aio.subscription import Subscription
from nats.js import JetStreamContext
from nats.js.errors import NotFoundError

from .base import BrokerAdapter, PublishError, SubscriptionError

logger = logging.getLogger(__name__)

# Subject token standing in for an empty topic segment ("a//b")
EMPTY_SEGMENT = "%"


def topic_to_tokens(topic: str) -> str:
    """
    Encode a "/"-separated topic as "."-separated NATS subject tokens.

    Each segment is percent-encoded so dots, spaces and NATS wildcards inside a
    segment cannot change the subject structure.

    Examples:
        "room/1" -> "room.1"
        "a.b/c d" -> "a%2Eb.c%20d"
    """
    tokens = []
    for segment in topic.split("/"):
        if not segment:
            tokens.append(EMPTY_SEGMENT)
        else:
            tokens.append(quote(segment, safe="").replace(".", "%2E"))
    return ".".join(tokens)


def tokens_to_topic(tokens: str) -> str:
    """Reverse of topic_to_tokens."""
    segments = []
    for token in tokens.split("."):
        segments.append("" if token == EMPTY_SEGMENT else unquote(token))
    return "/".join(segments)


class NatsAdapter(BrokerAdapter):
    """
    NATS adapter for the Relay Gateway.

    Features:
    - Automatic reconnection (handled by nats-py)
    - Retained payloads in a JetStream stream keeping one message per subject
    - Degrades to live-only delivery when JetStream is unavailable
    """

    def __init__(
        self,
        url: str = "nats://localhost:4222",
        reconnect_time_wait: int = 2,
        max_reconnect_attempts: int = -1,
        subject_prefix: str = "relay.topics",
        retained_prefix: str = "relay.retained",
        retained_stream: str = "RELAY_RETAINED",
    ):
        """
        Initialize the NATS adapter.

        Args:
            url: NATS server URL
            reconnect_time_wait: Time to wait between reconnection attempts (seconds)
            max_reconnect_attempts: Max reconnection attempts (-1 for infinite)
            subject_prefix: Subject namespace for live delivery
            retained_prefix: Subject namespace for the retained store
            retained_stream: JetStream stream name for the retained store
        """
        super().__init__()
        self._url = url
        self._reconnect_time_wait = reconnect_time_wait
        self._max_reconnect_attempts = max_reconnect_attempts
        self._subject_prefix = subject_prefix
        self._retained_prefix = retained_prefix
        self._retained_stream = retained_stream
        self._client: NatsClient | None = None
        self._js: JetStreamContext | None = None
        self._subscriptions: Dict[str, Subscription] = {}

    async def connect(self) -> None:
        """Connect to NATS server with auto-reconnection."""
        if self._client is not None and self._client.is_connected:
            logger.warning("Already connected to NATS")
            return

        logger.info(f"Connecting to NATS at {self._url}")

        try:
            self._client = await nats.connect(
                servers=[self._url],
                reconnect_time_wait=self._reconnect_time_wait,
                max_reconnect_attempts=self._max_reconnect_attempts,
                error_cb=self._error_callback,
                disconnected_cb=self._disconnected_callback,
                reconnected_cb=self._reconnected_callback,
                closed_cb=self._closed_callback,
            )
            logger.info(f"Connected to NATS server: {self._client.connected_url}")
        except Exception as e:
            logger.error(f"Failed to connect to NATS: {e}")
            raise ConnectionError(f"Failed to connect to NATS at {self._url}: {e}") from e

        await self._setup_retained_store()

    async def _setup_retained_store(self) -> None:
        """Create the JetStream stream backing retained publishes."""
        js = self._client.jetstream()
        try:
            await js.add_stream(
                name=self._retained_stream,
                subjects=[f"{self._retained_prefix}.>"],
                max_msgs_per_subject=1,
            )
            self._js = js
            logger.info(f"Retained store ready (stream: {self._retained_stream})")
        except Exception as e:
            self._js = None
            logger.warning(f"JetStream unavailable, retained delivery disabled: {e}")

    async def disconnect(self) -> None:
        """Gracefully disconnect from NATS."""
        if self._client is None:
            return

        logger.info("Disconnecting from NATS")

        for topic in list(self._subscriptions.keys()):
            await self.unsubscribe(topic)

        try:
            await self._client.drain()
        except Exception as e:
            logger.warning(f"Error draining NATS connection: {e}")

        self._client = None
        self._js = None
        logger.info("Disconnected from NATS")

    async def publish(self, topic: str, payload: str, retain: bool = False) -> None:
        """
        Publish a payload to the live subject, and to the retained store if asked.

        Args:
            topic: Hierarchical topic (e.g., "room/1")
            payload: Message payload
            retain: Keep the payload for later subscribers
        """
        if not self.is_connected:
            raise ConnectionError("Not connected to NATS")

        subject = self._topic_to_subject(topic)
        data = payload.encode("utf-8")

        try:
            if retain and self._js is not None:
                await self._js.publish(self._topic_to_retained_subject(topic), data)
            await self._client.publish(subject, data)
            logger.debug(f"Published message to {subject} (retain={retain})")
        except Exception as e:
            logger.error(f"Failed to publish to {subject}: {e}")
            raise PublishError(f"Failed to publish to {subject}: {e}") from e

    async def subscribe(self, topic: str) -> None:
        """Subscribe to the live subject of a topic."""
        if not self.is_connected:
            raise ConnectionError("Not connected to NATS")

        if topic in self._subscriptions:
            return

        subject = self._topic_to_subject(topic)
        try:
            sub = await self._client.subscribe(subject, cb=self._on_message)
        except Exception as e:
            logger.error(f"Failed to subscribe to {subject}: {e}")
            raise SubscriptionError(f"Failed to subscribe to {subject}: {e}") from e

        self._subscriptions[topic] = sub
        logger.info(f"Subscribed to {subject}")

    async def unsubscribe(self, topic: str) -> None:
        """Unsubscribe from a topic."""
        sub = self._subscriptions.pop(topic, None)
        if sub is None:
            logger.warning(f"No subscription found for {topic}")
            return

        try:
            await sub.unsubscribe()
            logger.info(f"Unsubscribed from {topic}")
        except Exception as e:
            logger.warning(f"Error unsubscribing from {topic}: {e}")

    async def get_retained(self, topic: str) -> Optional[str]:
        """Fetch the retained payload for a topic from JetStream."""
        if not self.is_connected:
            raise ConnectionError("Not connected to NATS")
        if self._js is None:
            return None

        try:
            msg = await self._js.get_last_msg(
                self._retained_stream,
                self._topic_to_retained_subject(topic),
            )
        except NotFoundError:
            return None
        return msg.data.decode("utf-8") if msg.data else None

    @property
    def is_connected(self) -> bool:
        """Check if connected to NATS."""
        return self._client is not None and self._client.is_connected

    async def _on_message(self, msg: Msg) -> None:
        """Translate a NATS message into a handler call."""
        try:
            topic = self._subject_to_topic(msg.subject)
            await self._dispatch(topic, msg.data.decode("utf-8"))
        except UnicodeDecodeError as e:
            logger.error(f"Failed to decode message from {msg.subject}: {e}")
        except Exception as e:
            logger.error(f"Error in message handler for {msg.subject}: {e}")

    def _topic_to_subject(self, topic: str) -> str:
        """
        Convert topic name to a live NATS subject.

        Examples:
            "room/1" -> "relay.topics.room.1"
        """
        return f"{self._subject_prefix}.{topic_to_tokens(topic)}"

    def _topic_to_retained_subject(self, topic: str) -> str:
        return f"{self._retained_prefix}.{topic_to_tokens(topic)}"

    def _subject_to_topic(self, subject: str) -> str:
        """
        Convert a live NATS subject back to the topic name.

        Examples:
            "relay.topics.room.1" -> "room/1"
        """
        prefix = f"{self._subject_prefix}."
        if subject.startswith(prefix):
            subject = subject[len(prefix):]
        return tokens_to_topic(subject)

    # NATS callbacks for connection lifecycle

    async def _error_callback(self, e: Exception) -> None:
        """Called on NATS errors."""
        logger.error(f"NATS error: {e}")

    async def _disconnected_callback(self) -> None:
        """Called when disconnected from NATS."""
        logger.warning("Disconnected from NATS server")

    async def _reconnected_callback(self) -> None:
        """Called when reconnected to NATS."""
        logger.info(f"Reconnected to NATS server: {self._client.connected_url}")

    async def _closed_callback(self) -> None:
        """Called when NATS connection is closed."""
        logger.info("NATS connection closed")
