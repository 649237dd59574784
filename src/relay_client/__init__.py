"""
Relay Client - resilient WebSocket client for the Relay Gateway.
"""
from .client import (
    ConnectionState,
    MessageCallback,
    RelayClient,
    is_remote_logging_suppressed,
    suppress_remote_logging,
)
from .log_handler import RemoteLogHandler

__all__ = [
    "ConnectionState",
    "MessageCallback",
    "RelayClient",
    "RemoteLogHandler",
    "is_remote_logging_suppressed",
    "suppress_remote_logging",
]
