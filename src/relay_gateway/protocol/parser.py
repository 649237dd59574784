"""
Format detection for inbound WebSocket frames.

Every frame resolves to exactly one variant of ``Frame``. A frame is JSON only
if it is a syntactically valid JSON object; anything else goes through the
legacy signaling parser.
"""
import json
from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import ValidationError

from ..models.frames import (
    CONTROL_VERBS,
    SIGNALING_VERBS,
    control_command_adapter,
    signaling_command_adapter,
)
from .legacy import MalformedFrameError, SignalingFrame, parse_legacy


@dataclass(frozen=True)
class JsonCommandFrame:
    """A validated JSON control or signaling command."""
    command: Any
    raw: str

    @property
    def verb(self) -> str:
        return getattr(self.command, "command", None) or self.command.type


@dataclass(frozen=True)
class UnknownCommandFrame:
    """A JSON object whose verb the gateway does not handle."""
    verb: Optional[str]
    raw: str


@dataclass(frozen=True)
class SelfTestFrame:
    """Connectivity self-test; recognized and discarded."""
    raw: str


@dataclass(frozen=True)
class MalformedFrame:
    """Input that fits neither protocol."""
    reason: str
    raw: str


Frame = Union[JsonCommandFrame, SignalingFrame, SelfTestFrame, UnknownCommandFrame, MalformedFrame]


def _parse_json_object(raw: str) -> Optional[dict]:
    if not raw.lstrip().startswith("{"):
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def parse_frame(raw: str, self_test_marker: str = "SELFTEST") -> Frame:
    """
    Classify and parse a single inbound text frame.

    Args:
        raw: Frame text as received
        self_test_marker: Prefix of self-test frames (empty disables the check)

    Returns:
        One of the Frame variants
    """
    if self_test_marker and raw.startswith(self_test_marker):
        return SelfTestFrame(raw=raw)

    data = _parse_json_object(raw)
    if data is not None:
        return _parse_json_command(data, raw)

    try:
        return parse_legacy(raw)
    except MalformedFrameError as e:
        return MalformedFrame(reason=str(e), raw=raw)


def _parse_json_command(data: dict, raw: str) -> Frame:
    verb = data.get("command") or data.get("type")
    if not isinstance(verb, str):
        return UnknownCommandFrame(verb=None, raw=raw)

    try:
        if verb in CONTROL_VERBS:
            command = control_command_adapter.validate_python({**data, "command": verb})
        elif verb in SIGNALING_VERBS:
            command = signaling_command_adapter.validate_python({**data, "type": verb})
        else:
            return UnknownCommandFrame(verb=verb, raw=raw)
    except ValidationError as e:
        return MalformedFrame(reason=f"invalid {verb} command: {e.error_count()} error(s)", raw=raw)

    return JsonCommandFrame(command=command, raw=raw)
