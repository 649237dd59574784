"""
WebSocket client for the Relay Gateway.

RelayClient keeps one connection to the gateway alive, reconnecting at a fixed
interval forever. Subscriptions, publishes and log entries requested while the
connection is down are kept locally and sent once it is back.

Usage:
    from relay_client import RelayClient

    client = RelayClient("ws://localhost:3000/ws")

    async def on_telemetry(channel, message):
        print(f"{channel}: {message}")

    client.subscribe("robot/telemetry", on_telemetry)
    await client.start()

    client.publish("robot/commands", {"action": "stop"})
"""
import asyncio
import inspect
import json
import logging
from collections import deque
from contextlib import contextmanager
from contextvars import ContextVar
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, Iterator, Optional, Set, Tuple, Union

import websockets

logger = logging.getLogger(__name__)

# Callback for incoming messages: (channel, message) -> None | awaitable
MessageCallback = Callable[[str, str], Union[None, Awaitable[None]]]

_remote_send_in_progress: ContextVar[bool] = ContextVar("remote_send_in_progress", default=False)


@contextmanager
def suppress_remote_logging() -> Iterator[None]:
    """Mark the current context as sending to the gateway."""
    token = _remote_send_in_progress.set(True)
    try:
        yield
    finally:
        _remote_send_in_progress.reset(token)


def is_remote_logging_suppressed() -> bool:
    """True while a remote send is in progress in the current context."""
    return _remote_send_in_progress.get()


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class RelayClient:
    """
    Resilient client for the gateway's control protocol.

    This client:
    - Reconnects at a fixed interval, without giving up
    - Replays subscriptions on every new connection
    - Buffers publishes and log entries in FIFO queues while disconnected
    - Dispatches ``{channel, message}`` deliveries to per-channel callbacks

    Attributes:
        url: WebSocket URL of the gateway
        reconnect_interval: Seconds to wait between connection attempts
        pending_subscriptions: Topics this client wants, across reconnects
        requested_subscriptions: Topics subscribed on the current connection
    """

    def __init__(
        self,
        url: str,
        reconnect_interval: float = 5.0,
        connect: Callable[[str], Awaitable[Any]] = websockets.connect,
    ):
        """
        Initialize the RelayClient.

        Args:
            url: WebSocket URL of the gateway (e.g., "ws://localhost:3000/ws")
            reconnect_interval: Fixed delay between reconnection attempts (seconds)
            connect: Coroutine factory opening a socket; ``websockets.connect``
                unless replaced in tests
        """
        self.url = url
        self.reconnect_interval = reconnect_interval
        self._connect = connect

        self.state = ConnectionState.DISCONNECTED
        self.pending_subscriptions: Set[str] = set()
        self.requested_subscriptions: Set[str] = set()
        self._callbacks: Dict[str, MessageCallback] = {}

        # Outbound queues, drained in this order by a single writer
        self._control_queue: Deque[str] = deque()
        self._message_queue: Deque[str] = deque()
        self._log_queue: Deque[str] = deque()

        self._socket: Optional[Any] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task] = None
        self._wakeup = asyncio.Event()
        self._stop_event = asyncio.Event()
        self._connected_event = asyncio.Event()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start the background connection loop. Returns immediately."""
        if self._task is not None:
            logger.warning("RelayClient already started")
            return
        self._loop = asyncio.get_running_loop()
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop reconnecting and close the current connection."""
        logger.info("Stopping RelayClient")
        self._stop_event.set()
        self._wakeup.set()

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self.state = ConnectionState.DISCONNECTED
        self._connected_event.clear()

    async def wait_connected(self) -> None:
        """Wait until the client is connected."""
        await self._connected_event.wait()

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def queued(self) -> int:
        """Number of frames waiting to be sent."""
        return len(self._control_queue) + len(self._message_queue) + len(self._log_queue)

    # =========================================================================
    # Public API
    # =========================================================================

    def subscribe(self, topic: str, callback: MessageCallback) -> None:
        """
        Receive messages published on ``topic``.

        The subscription survives reconnects. Registering a new callback for a
        topic replaces the previous one.
        """
        self._callbacks[topic] = callback
        self.pending_subscriptions.add(topic)
        if self.is_connected:
            self._request_subscription(topic)

    def unsubscribe(self, topic: str) -> None:
        self._callbacks.pop(topic, None)
        self.pending_subscriptions.discard(topic)
        if topic in self.requested_subscriptions:
            self.requested_subscriptions.discard(topic)
            self._enqueue(self._control_queue, {"command": "unsubscribe", "channel": topic})

    def publish(self, topic: str, message: Any) -> None:
        """Queue a publish. Structured messages are JSON-encoded by the gateway."""
        self._enqueue(self._message_queue, {"command": "publish", "channel": topic, "message": message})

    def log(self, topic: str, entry: Dict[str, Any]) -> None:
        """Queue a ``debug_log`` entry (``message``, ``timestamp``, ``stackTrace``)."""
        self._enqueue(self._log_queue, {**entry, "command": "debug_log", "channel": topic})

    # =========================================================================
    # Connection loop
    # =========================================================================

    async def _run(self) -> None:
        """Connect, serve the session, wait the fixed interval, repeat."""
        while not self._stop_event.is_set():
            self.state = ConnectionState.CONNECTING
            try:
                logger.info(f"Connecting to gateway: {self.url}")
                socket = await self._connect(self.url)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Connection to {self.url} failed: {e}")
            else:
                try:
                    await self._run_session(socket)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.warning(f"Connection to {self.url} lost: {e}")
                finally:
                    await self._close_socket(socket)

            self.state = ConnectionState.DISCONNECTED
            self._connected_event.clear()
            if self._stop_event.is_set():
                break

            logger.debug(f"Reconnecting in {self.reconnect_interval:.1f}s")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.reconnect_interval)
            except asyncio.TimeoutError:
                pass

    async def _run_session(self, socket: Any) -> None:
        self._socket = socket
        self._begin_session()
        self.state = ConnectionState.CONNECTED
        self._connected_event.set()
        logger.info(f"Connected to gateway: {self.url}")

        reader = asyncio.create_task(self._read_loop(socket))
        writer = asyncio.create_task(self._write_loop(socket))
        try:
            done, _ = await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (reader, writer):
                task.cancel()
            await asyncio.gather(reader, writer, return_exceptions=True)
            self._socket = None

        for task in done:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()

    def _begin_session(self) -> None:
        """Reset per-connection state and queue the subscription replay."""
        self.requested_subscriptions.clear()
        self._control_queue.clear()
        for topic in sorted(self.pending_subscriptions):
            self._request_subscription(topic)

    def _request_subscription(self, topic: str) -> None:
        if topic in self.requested_subscriptions:
            return
        self.requested_subscriptions.add(topic)
        self._enqueue(self._control_queue, {"command": "subscribe", "channel": topic})

    async def _close_socket(self, socket: Any) -> None:
        try:
            await socket.close()
        except Exception as e:
            logger.debug(f"Error closing socket: {e}")

    # =========================================================================
    # Writer
    # =========================================================================

    def _enqueue(self, queue: Deque[str], frame: Dict[str, Any]) -> None:
        queue.append(json.dumps(frame))
        self._notify_writer()

    def _notify_writer(self) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._wakeup.set()
        else:
            loop.call_soon_threadsafe(self._wakeup.set)

    def _next_frame(self) -> Optional[Tuple[Deque[str], str]]:
        for queue in (self._control_queue, self._message_queue, self._log_queue):
            if queue:
                return queue, queue[0]
        return None

    async def _write_loop(self, socket: Any) -> None:
        """
        Drain the queues in order: control, messages, logs.

        A frame is removed only after its send succeeded; a failed send ends
        the session and leaves the frame at the head of its queue.
        """
        while True:
            item = self._next_frame()
            if item is None:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            queue, frame = item
            with suppress_remote_logging():
                await socket.send(frame)
                logger.debug(f"Sent frame ({len(frame)} bytes)")
            queue.popleft()

    # =========================================================================
    # Reader
    # =========================================================================

    async def _read_loop(self, socket: Any) -> None:
        async for raw in socket:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8", errors="replace")
            await self._handle_frame(raw)

    async def _handle_frame(self, raw: str) -> None:
        """Dispatch a ``{channel, message}`` delivery to its callback."""
        try:
            data = json.loads(raw)
        except ValueError:
            logger.debug(f"Ignoring non-JSON frame: {raw[:80]}")
            return

        if not isinstance(data, dict) or "channel" not in data or "message" not in data:
            logger.debug(f"Ignoring frame without channel/message: {raw[:80]}")
            return

        channel = data["channel"]
        callback = self._callbacks.get(channel)
        if callback is None:
            logger.debug(f"No callback for channel [{channel}]")
            return

        try:
            result = callback(channel, data["message"])
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Callback for [{channel}] failed: {e}", exc_info=True)
