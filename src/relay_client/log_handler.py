"""
Logging handler that forwards records to the gateway as ``debug_log`` entries.
"""
import logging
import traceback
from datetime import datetime, timezone
from typing import Optional

from .client import RelayClient, is_remote_logging_suppressed, suppress_remote_logging

MAX_MESSAGE_LENGTH = 2048
MAX_STACK_TRACE_LENGTH = 4096
TRUNCATED_INDICATOR = " ...[truncated]"


def truncate(text: str, max_length: int) -> str:
    """Cut ``text`` to ``max_length`` characters, indicator included."""
    if len(text) <= max_length:
        return text
    return text[: max_length - len(TRUNCATED_INDICATOR)] + TRUNCATED_INDICATOR


class RemoteLogHandler(logging.Handler):
    """
    Forward log records to ``<debug_channel>/logs|warnings|errors|exceptions``.

    Records emitted while the client is sending (including the client's own
    log lines from inside a send) are not forwarded.

    Usage:
        handler = RemoteLogHandler(client, extended=True)
        logging.getLogger().addHandler(handler)
    """

    def __init__(
        self,
        client: RelayClient,
        debug_channel: str = "debug",
        extended: bool = False,
        level: int = logging.NOTSET,
    ):
        """
        Args:
            client: Client used to ship the entries
            debug_channel: Topic prefix for log entries
            extended: Include stack traces in entries
            level: Minimum level forwarded
        """
        super().__init__(level=level)
        self.client = client
        self.debug_channel = debug_channel
        self.extended = extended

    def topic_for(self, record: logging.LogRecord) -> str:
        if record.exc_info:
            suffix = "exceptions"
        elif record.levelno >= logging.ERROR:
            suffix = "errors"
        elif record.levelno >= logging.WARNING:
            suffix = "warnings"
        else:
            suffix = "logs"
        return f"{self.debug_channel}/{suffix}"

    def emit(self, record: logging.LogRecord) -> None:
        if is_remote_logging_suppressed():
            return

        with suppress_remote_logging():
            try:
                entry = {
                    "message": truncate(record.getMessage(), MAX_MESSAGE_LENGTH),
                    "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
                    "stackTrace": self._stack_trace(record) if self.extended else None,
                }
                self.client.log(self.topic_for(record), entry)
            except Exception:
                self.handleError(record)

    def _stack_trace(self, record: logging.LogRecord) -> Optional[str]:
        if record.exc_info:
            trace = "".join(traceback.format_exception(*record.exc_info))
        elif record.stack_info:
            trace = record.stack_info
        else:
            return None
        return truncate(trace, MAX_STACK_TRACE_LENGTH)
