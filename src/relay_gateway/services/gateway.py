"""
The gateway object graph.

One ``Gateway`` per application: it owns the broker adapter, the subscription
registry, the room directory and the live connections. It is created in the
application lifespan and stored on ``app.state``.
"""
import logging
from typing import Any, Optional

from ..adapters.base import BrokerAdapter
from ..adapters.memory_adapter import MemoryAdapter
from ..adapters.nats_adapter import NatsAdapter
from ..core.config import Settings
from ..core.text import to_payload
from .broker import Broker
from .dispatcher import CommandDispatcher
from .lifecycle import ConnectionManager
from .rooms import RoomDirectory
from .signaling import SignalingService
from .subscriptions import SubscriptionRegistry

logger = logging.getLogger(__name__)


def create_adapter(config: Settings) -> BrokerAdapter:
    """
    Factory function to create the appropriate adapter based on configuration.
    """
    adapter_type = config.broker_adapter.lower()

    if adapter_type == "nats":
        return NatsAdapter(
            url=config.nats_url,
            reconnect_time_wait=config.nats_reconnect_time_wait,
            max_reconnect_attempts=config.nats_max_reconnect_attempts,
            subject_prefix=config.nats_subject_prefix,
            retained_prefix=config.nats_retained_prefix,
            retained_stream=config.nats_retained_stream,
        )
    elif adapter_type == "memory":
        return MemoryAdapter()
    else:
        raise ValueError(f"Unknown adapter type: {adapter_type}")


class Gateway:
    """Wires the relay services around one broker adapter."""

    def __init__(self, adapter: BrokerAdapter, config: Settings):
        self.config = config
        self.adapter = adapter
        self.broker = Broker(adapter)
        self.registry = SubscriptionRegistry(self.broker)
        self.rooms = RoomDirectory()
        self.signaling = SignalingService(self.rooms, default_room=config.default_room)
        self.connections = ConnectionManager(self.registry, self.signaling)
        self.dispatcher = CommandDispatcher(self.registry, self.broker, self.signaling, config)

        adapter.set_handler(self.on_broker_publish)

    @classmethod
    def from_settings(cls, config: Settings) -> "Gateway":
        return cls(create_adapter(config), config)

    async def start(self) -> None:
        """Connect the broker adapter."""
        logger.info(f"Starting Relay Gateway with {self.adapter.name} adapter")
        try:
            await self.adapter.connect()
            logger.info(f"Relay Gateway ready on port {self.config.service_port}")
        except Exception as e:
            logger.error(f"Failed to connect adapter: {e}")
            # Keep serving signaling in dev mode without a broker
            if not self.config.debug:
                raise

    async def stop(self) -> None:
        """Tear down every connection, then disconnect the adapter."""
        logger.info("Shutting down Relay Gateway")
        await self.connections.close_all()
        await self.adapter.disconnect()
        logger.info("Relay Gateway shutdown complete")

    async def on_broker_publish(self, topic: str, payload: str) -> None:
        await self.registry.fan_out(topic, payload)

    async def publish(self, channel: str, message: Any, retain: Optional[bool] = None) -> bool:
        """
        Publish on behalf of a non-socket caller (the HTTP API).

        Args:
            channel: Target topic
            message: String payload or structured value (JSON-encoded)
            retain: Override for the data retention policy

        Returns:
            True if the broker accepted the publish
        """
        if retain is None:
            retain = self.config.retain_data
        return await self.broker.publish(channel, to_payload(message), retain=retain)
