"""
Legacy pipe-delimited signaling protocol.

Frame layout: ``COMMAND|senderPeerId|targetPeerId|...``. Fields after the
target are command-specific and opaque to the gateway; frames are always
relayed verbatim.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Tuple

SEPARATOR = "|"
BROADCAST_TARGET = "ALL"
MIN_SEGMENTS = 3


class LegacyCommand(str, Enum):
    """Commands understood by the legacy signaling protocol."""
    NEWPEER = "NEWPEER"
    NEWPEERACK = "NEWPEERACK"
    OFFER = "OFFER"
    ANSWER = "ANSWER"
    CANDIDATE = "CANDIDATE"
    DATA = "DATA"
    COMPLETE = "COMPLETE"
    DISPOSE = "DISPOSE"


# Commands relayed to a single peer (or the room for "ALL"); need membership
RELAY_COMMANDS = frozenset({
    LegacyCommand.NEWPEERACK,
    LegacyCommand.OFFER,
    LegacyCommand.ANSWER,
    LegacyCommand.CANDIDATE,
    LegacyCommand.DATA,
    LegacyCommand.COMPLETE,
})


class MalformedFrameError(ValueError):
    """Raised when a frame does not follow the legacy layout."""
    pass


@dataclass(frozen=True)
class SignalingFrame:
    """A parsed legacy signaling frame."""
    command: LegacyCommand
    sender_peer_id: str
    target_peer_id: str
    extra: Tuple[str, ...]
    raw: str

    @property
    def is_broadcast(self) -> bool:
        return self.target_peer_id == BROADCAST_TARGET


def parse_legacy(raw: str) -> SignalingFrame:
    """
    Parse a pipe-delimited frame.

    Trailing line terminators are tolerated and the command is matched
    case-insensitively. The original text is kept for verbatim relay.

    Raises:
        MalformedFrameError: too few segments, empty sender or unknown command
    """
    segments = raw.rstrip("\r\n").split(SEPARATOR)
    if len(segments) < MIN_SEGMENTS:
        raise MalformedFrameError(
            f"expected at least {MIN_SEGMENTS} segments, got {len(segments)}"
        )

    name, sender, target = (s.strip() for s in segments[:3])
    try:
        command = LegacyCommand(name.upper())
    except ValueError:
        raise MalformedFrameError(f"unknown command {name!r}") from None

    if not sender:
        raise MalformedFrameError("empty sender peer id")

    return SignalingFrame(
        command=command,
        sender_peer_id=sender,
        target_peer_id=target,
        extra=tuple(segments[3:]),
        raw=raw,
    )
