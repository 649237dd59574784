"""
Relay Gateway Adapters

This package provides the adapter pattern implementation for the broker
backends (NATS, In-Memory).
"""
from .base import (
    AdapterError,
    BrokerAdapter,
    PublishError,
    PublishHandler,
    SubscriptionError,
    is_system_topic,
)
from .nats_adapter import NatsAdapter
from .memory_adapter import MemoryAdapter

__all__ = [
    "AdapterError",
    "BrokerAdapter",
    "PublishError",
    "PublishHandler",
    "SubscriptionError",
    "is_system_topic",
    "NatsAdapter",
    "MemoryAdapter",
]
