"""
Wire protocol parsing: JSON commands and legacy pipe-delimited signaling.
"""
from .legacy import (
    BROADCAST_TARGET,
    RELAY_COMMANDS,
    LegacyCommand,
    MalformedFrameError,
    SignalingFrame,
    parse_legacy,
)
from .parser import (
    Frame,
    JsonCommandFrame,
    MalformedFrame,
    SelfTestFrame,
    UnknownCommandFrame,
    parse_frame,
)

__all__ = [
    "BROADCAST_TARGET",
    "RELAY_COMMANDS",
    "LegacyCommand",
    "MalformedFrameError",
    "SignalingFrame",
    "parse_legacy",
    "Frame",
    "JsonCommandFrame",
    "MalformedFrame",
    "SelfTestFrame",
    "UnknownCommandFrame",
    "parse_frame",
]
