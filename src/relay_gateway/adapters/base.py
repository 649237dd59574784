"""
Base adapter interface for broker backends.

All adapters must implement this interface so the gateway behaves the same
over NATS or the in-memory store. The gateway consumes the broker through
three operations only: publish, subscribe and the on_publish push callback.
"""
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

# Type alias for the broker push callback: (topic, payload) -> None
PublishHandler = Callable[[str, str], Awaitable[None]]

# Topics starting with this marker belong to the broker itself
SYSTEM_TOPIC_MARKER = "$"


def is_system_topic(topic: str) -> bool:
    """Return True for broker-internal topics that must never reach clients."""
    return topic.startswith(SYSTEM_TOPIC_MARKER)


class BrokerAdapter(ABC):
    """
    Abstract base class for broker adapters.

    Payloads are always strings; structured values are serialized by the
    caller before they reach the adapter.
    """

    def __init__(self) -> None:
        self._handler: Optional[PublishHandler] = None

    def set_handler(self, handler: PublishHandler) -> None:
        """
        Register the callback invoked once per accepted publish.

        Args:
            handler: Async callback receiving (topic, payload)
        """
        self._handler = handler

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish connection to the broker.

        Raises:
            ConnectionError: If unable to connect to the broker
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Gracefully drop all subscriptions and close the connection."""
        pass

    @abstractmethod
    async def publish(self, topic: str, payload: str, retain: bool = False) -> None:
        """
        Publish a payload to a topic.

        Args:
            topic: Hierarchical topic (segments separated by "/")
            payload: Pre-serialized message payload
            retain: Store the payload so later subscribers receive it

        Raises:
            PublishError: If the message could not be published
            ConnectionError: If not connected to the broker
        """
        pass

    @abstractmethod
    async def subscribe(self, topic: str) -> None:
        """
        Start receiving publishes for a topic through the handler.

        Subscribing twice to the same topic has no further effect.

        Raises:
            SubscriptionError: If the subscription could not be created
            ConnectionError: If not connected to the broker
        """
        pass

    @abstractmethod
    async def unsubscribe(self, topic: str) -> None:
        """Stop receiving publishes for a topic. Unknown topics are ignored."""
        pass

    @abstractmethod
    async def get_retained(self, topic: str) -> Optional[str]:
        """
        Return the retained payload for a topic, if any.

        Raises:
            ConnectionError: If not connected to the broker
        """
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the adapter is connected to the broker."""
        pass

    @property
    def name(self) -> str:
        """Return the adapter name for logging."""
        return self.__class__.__name__

    async def _dispatch(self, topic: str, payload: str) -> None:
        """Hand a broker publish to the registered handler."""
        if is_system_topic(topic) or self._handler is None:
            return
        await self._handler(topic, payload)


class AdapterError(Exception):
    """Base exception for adapter errors."""
    pass


class PublishError(AdapterError):
    """Raised when a message could not be published."""
    pass


class SubscriptionError(AdapterError):
    """Raised when a subscription could not be created."""
    pass
