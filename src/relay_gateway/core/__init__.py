"""
Core configuration and helpers for the relay gateway.
"""

from .config import settings, Settings
from .text import to_payload, truncate

__all__ = [
    "settings",
    "Settings",
    "to_payload",
    "truncate",
]
