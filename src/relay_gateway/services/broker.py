"""
Best-effort façade over the broker adapter.

From the gateway's point of view every broker call is fire-and-forget: a
failing broker is logged and reported as ``False``/``None`` but never raised
into a connection handler.
"""
import logging
from typing import Optional

from ..adapters.base import AdapterError, BrokerAdapter
from ..core.text import truncate

logger = logging.getLogger(__name__)

_EXPECTED_ERRORS = (AdapterError, ConnectionError, OSError)


class Broker:
    """Wraps a BrokerAdapter with the gateway's failure contract."""

    def __init__(self, adapter: BrokerAdapter):
        self.adapter = adapter

    @property
    def name(self) -> str:
        return self.adapter.name

    @property
    def is_connected(self) -> bool:
        return self.adapter.is_connected

    async def publish(self, topic: str, payload: str, retain: bool) -> bool:
        """
        Forward a publish to the broker.

        Returns:
            True if the adapter accepted the publish
        """
        try:
            await self.adapter.publish(topic, payload, retain=retain)
            return True
        except _EXPECTED_ERRORS as e:
            logger.warning(f"Broker publish to [{topic}] dropped ({truncate(payload, 256)}): {e}")
        except Exception as e:
            logger.error(f"Unexpected broker error publishing to [{topic}]: {e}", exc_info=True)
        return False

    async def subscribe(self, topic: str) -> bool:
        try:
            await self.adapter.subscribe(topic)
            return True
        except _EXPECTED_ERRORS as e:
            logger.warning(f"Broker subscribe to [{topic}] failed: {e}")
        except Exception as e:
            logger.error(f"Unexpected broker error subscribing to [{topic}]: {e}", exc_info=True)
        return False

    async def unsubscribe(self, topic: str) -> bool:
        try:
            await self.adapter.unsubscribe(topic)
            return True
        except _EXPECTED_ERRORS as e:
            logger.warning(f"Broker unsubscribe from [{topic}] failed: {e}")
        except Exception as e:
            logger.error(f"Unexpected broker error unsubscribing from [{topic}]: {e}", exc_info=True)
        return False

    async def get_retained(self, topic: str) -> Optional[str]:
        """Return the retained payload for a topic, or None if absent or unreachable."""
        try:
            return await self.adapter.get_retained(topic)
        except _EXPECTED_ERRORS as e:
            logger.warning(f"Could not fetch retained payload for [{topic}]: {e}")
        except Exception as e:
            logger.error(f"Unexpected broker error reading retained [{topic}]: {e}", exc_info=True)
        return None
