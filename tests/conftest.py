"""
Pytest configuration for Relay Gateway tests.
"""
import json
import os
from typing import Any, Dict, List

import pytest

# Set test environment variables
os.environ["BROKER_ADAPTER"] = "memory"
os.environ["DEBUG"] = "true"

from relay_gateway.adapters.memory_adapter import MemoryAdapter
from relay_gateway.core.config import Settings
from relay_gateway.services.connection import Connection
from relay_gateway.services.gateway import Gateway


class Outbox:
    """Collects frames sent to a fake connection."""

    def __init__(self) -> None:
        self.frames: List[str] = []

    async def send(self, text: str) -> None:
        self.frames.append(text)

    def json(self) -> List[Dict[str, Any]]:
        """JSON frames only; legacy pipe-delimited frames are skipped."""
        return [json.loads(f) for f in self.frames if f.startswith("{")]

    def of_type(self, frame_type: str) -> List[Dict[str, Any]]:
        return [f for f in self.json() if f.get("type") == frame_type]

    def clear(self) -> None:
        self.frames.clear()


@pytest.fixture
def config() -> Settings:
    """Settings for an in-memory gateway."""
    return Settings(broker_adapter="memory", debug=True)


@pytest.fixture
async def adapter():
    """Create and connect a memory adapter for testing."""
    adapter = MemoryAdapter()
    await adapter.connect()
    yield adapter
    await adapter.disconnect()


@pytest.fixture
async def gateway(adapter, config):
    """A started gateway over the memory adapter."""
    gateway = Gateway(adapter, config)
    yield gateway
    await gateway.connections.close_all()


@pytest.fixture
def open_connection(gateway):
    """Open a fake connection on the gateway; returns (connection, outbox)."""
    def _open():
        outbox = Outbox()
        connection = gateway.connections.open(outbox.send)
        return connection, outbox
    return _open


@pytest.fixture
def make_connection():
    """Standalone connection with an outbox, not registered anywhere."""
    def _make():
        outbox = Outbox()
        return Connection(send=outbox.send), outbox
    return _make
