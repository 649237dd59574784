"""
Text helpers shared by the relay and its log lines.
"""
import json
from typing import Any

TRUNCATED_INDICATOR = " ...[truncated]"


def truncate(message: Any, max_length: int = 2048) -> str:
    """
    Shorten a payload for logging.

    Non-string values are JSON-encoded first. Strings longer than
    ``max_length`` are cut so the result, indicator included, is exactly
    ``max_length`` characters long.
    """
    if not isinstance(message, str):
        message = json.dumps(message, default=str)
    if len(message) <= max_length:
        return message
    return message[: max_length - len(TRUNCATED_INDICATOR)] + TRUNCATED_INDICATOR


def to_payload(message: Any) -> str:
    """Broker payload for a publish: strings as-is, anything else as JSON."""
    if isinstance(message, str):
        return message
    return json.dumps(message)
