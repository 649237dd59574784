"""
Gateway services: connections, subscriptions, rooms and frame dispatch.
"""
from .broker import Broker
from .connection import Connection, deliver_all, looks_like_server_id, new_connection_id
from .dispatcher import CommandDispatcher, normalize_log_record
from .gateway import Gateway, create_adapter
from .lifecycle import ConnectionManager
from .rooms import BindResult, JoinResult, LeaveResult, RoomDirectory
from .signaling import SignalingService
from .subscriptions import SubscriptionRegistry

__all__ = [
    "Broker",
    "Connection",
    "deliver_all",
    "looks_like_server_id",
    "new_connection_id",
    "CommandDispatcher",
    "normalize_log_record",
    "Gateway",
    "create_adapter",
    "ConnectionManager",
    "BindResult",
    "JoinResult",
    "LeaveResult",
    "RoomDirectory",
    "SignalingService",
    "SubscriptionRegistry",
]
