"""
Watch bridge connection for the companion.

Handles the WebSocket link to the watch bridge with:
- Automatic reconnection with exponential backoff
- One task per inbound request
- Queued outbound calls while disconnected
"""

import asyncio
import logging
from collections import deque
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import WebSocketException

from .protocol import CALL, REQUEST, RESPONSE, RequestContext, decode_payload, encode_payload

logger = logging.getLogger("wrist.companion.device.connection")

RequestHandler = Callable[[RequestContext], Awaitable[None]]


class ConnectionState(Enum):
    """Bridge connection state."""

    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    RECONNECTING = auto()


class DeviceConnection:
    """
    Manages the WebSocket connection to the watch bridge.

    Features:
    - Automatic reconnection with exponential backoff
    - Request/response matching by request id
    - Fire-and-forget calls, queued during disconnection
    - Cancellation of in-flight requests on disconnect
    """

    def __init__(
        self,
        url: str,
        reconnect_interval: int = 5,
        max_reconnect_interval: int = 60,
        connect_timeout: float = 10.0,
        max_pending: int = 100,
    ):
        """
        Initialize the bridge connection.

        Args:
            url: Watch bridge WebSocket URL
            reconnect_interval: Base reconnection interval (seconds)
            max_reconnect_interval: Maximum reconnection interval (seconds)
            connect_timeout: Seconds to wait for the handshake
            max_pending: Calls kept while disconnected; oldest are dropped first
        """
        self._url = url
        self._reconnect_interval = reconnect_interval
        self._max_reconnect_interval = max_reconnect_interval
        self._connect_timeout = connect_timeout

        self._ws = None
        self._state = ConnectionState.DISCONNECTED
        self._reconnect_attempts = 0
        self._closing = False

        self._on_request: Optional[RequestHandler] = None

        # Background tasks
        self._receive_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._request_tasks: set[asyncio.Task] = set()

        # Calls waiting for a connection
        self._pending_messages: deque[dict[str, Any]] = deque(maxlen=max_pending)

    @staticmethod
    def _decode_message(data: str | bytes) -> dict[str, Any]:
        """Decode a WebSocket frame (text or UTF-8 binary)."""
        return decode_payload(data)

    @staticmethod
    def _encode_message(message: dict[str, Any]) -> bytes:
        return encode_payload(message)

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if connected to the bridge."""
        return self._state == ConnectionState.CONNECTED

    @property
    def pending_count(self) -> int:
        """Number of calls queued for later delivery."""
        return len(self._pending_messages)

    def on_request(self, handler: RequestHandler) -> None:
        """Set the handler invoked for every inbound request."""
        self._on_request = handler

    async def connect(self) -> bool:
        """
        Connect to the watch bridge.

        When the bridge is unreachable a background reconnection loop
        keeps trying until disconnect() is called.

        Returns:
            True if connected successfully
        """
        if self.is_connected:
            return True

        self._closing = False
        if await self._open():
            return True

        self._schedule_reconnect()
        return False

    async def _open(self) -> bool:
        self._state = ConnectionState.CONNECTING

        try:
            logger.info("Connecting to watch bridge at %s", self._url)
            self._ws = await asyncio.wait_for(
                websockets.connect(self._url),
                timeout=self._connect_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Connection to watch bridge timed out")
            self._state = ConnectionState.DISCONNECTED
            return False
        except (OSError, WebSocketException) as e:
            logger.warning("Failed to connect to watch bridge: %s", e)
            self._state = ConnectionState.DISCONNECTED
            return False

        self._state = ConnectionState.CONNECTED
        self._reconnect_attempts = 0
        logger.info("Connected to watch bridge")

        self._receive_task = asyncio.create_task(self._receive_loop())
        await self._flush_pending_messages()

        # A failed flush sends us back to reconnecting.
        return self.is_connected

    async def disconnect(self) -> None:
        """Disconnect and cancel everything in flight."""
        self._closing = True

        for task in (self._receive_task, self._reconnect_task):
            if task and task is not asyncio.current_task():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._receive_task = None
        self._reconnect_task = None

        await self._cancel_requests()

        if self._ws:
            await self._ws.close()
            self._ws = None

        self._state = ConnectionState.DISCONNECTED
        logger.info("Disconnected from watch bridge")

    async def call(self, payload: dict[str, Any]) -> bool:
        """
        Send an unsolicited message to the watch.

        Args:
            payload: JSON-serializable message body

        Returns:
            True if sent now, False if queued for later delivery
        """
        return await self._send({"type": CALL, "payload": payload}, queue=True)

    async def _respond(self, request_id: Any, payload: dict[str, Any]) -> None:
        await self._send({"type": RESPONSE, "id": request_id, "payload": payload}, queue=False)

    def _queue(self, message: dict[str, Any]) -> None:
        if len(self._pending_messages) == self._pending_messages.maxlen:
            logger.warning("Pending queue full; dropping oldest call")
        self._pending_messages.append(message)

    async def _send(self, message: dict[str, Any], queue: bool) -> bool:
        if not self._ws or not self.is_connected:
            if queue:
                self._queue(message)
                logger.debug("Queued message for later delivery")
            else:
                logger.warning("Dropped %s: not connected", message.get("type"))
            return False

        try:
            await self._ws.send(self._encode_message(message))
            return True
        except (OSError, WebSocketException) as e:
            logger.warning("Failed to send message: %s", e)
            if queue:
                self._queue(message)
            await self._handle_disconnect()
            return False

    def _dispatch(self, message: dict[str, Any]) -> None:
        """Route one decoded frame."""
        if message.get("type") != REQUEST:
            logger.debug("Ignoring %s frame", message.get("type"))
            return
        if self._on_request is None:
            logger.warning("No request handler set; dropping request %s", message.get("id"))
            return

        ctx = RequestContext(message.get("id"), message.get("payload"), self._respond)
        task = asyncio.create_task(self._run_request(ctx))
        self._request_tasks.add(task)
        task.add_done_callback(self._request_tasks.discard)

    async def _run_request(self, ctx: RequestContext) -> None:
        try:
            await self._on_request(ctx)
        except asyncio.CancelledError:
            logger.info("Request %s cancelled", ctx.request_id)
            raise
        except Exception:
            logger.exception("Unhandled fault in request %s; no response sent", ctx.request_id)
            return

        if not ctx.responded:
            logger.warning("Request %s finished without a response", ctx.request_id)

    async def _cancel_requests(self) -> None:
        current = asyncio.current_task()
        tasks = [task for task in self._request_tasks if task is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _receive_loop(self) -> None:
        """Background task to receive frames."""
        while self._state == ConnectionState.CONNECTED:
            try:
                raw = await self._ws.recv()
            except asyncio.CancelledError:
                break
            except (OSError, WebSocketException) as e:
                logger.warning("Receive error: %s", e)
                await self._handle_disconnect()
                break

            try:
                message = self._decode_message(raw)
            except ValueError as e:
                logger.warning("Dropping undecodable frame: %s", e)
                continue

            self._dispatch(message)

    async def _handle_disconnect(self) -> None:
        """Handle unexpected disconnection."""
        if self._closing or self._state == ConnectionState.RECONNECTING:
            return

        self._ws = None
        receive_task = self._receive_task
        self._receive_task = None
        if receive_task and receive_task is not asyncio.current_task():
            receive_task.cancel()

        self._schedule_reconnect()
        await self._cancel_requests()

    def _schedule_reconnect(self) -> None:
        if self._closing:
            return

        self._state = ConnectionState.RECONNECTING
        if self._reconnect_task and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    def _reconnect_delay(self) -> float:
        """Exponential backoff for the current attempt, capped."""
        return min(
            self._reconnect_interval * (2 ** (self._reconnect_attempts - 1)),
            self._max_reconnect_interval,
        )

    async def _reconnect_loop(self) -> None:
        """Background task for reconnection."""
        while self._state == ConnectionState.RECONNECTING and not self._closing:
            self._reconnect_attempts += 1
            delay = self._reconnect_delay()

            logger.info(
                "Reconnecting in %ds (attempt %d)",
                delay,
                self._reconnect_attempts,
            )

            await asyncio.sleep(delay)

            if self._closing or await self._open():
                break
            self._state = ConnectionState.RECONNECTING

    async def _flush_pending_messages(self) -> None:
        """Send any pending calls."""
        if not self._pending_messages:
            return

        messages = list(self._pending_messages)
        self._pending_messages.clear()

        for i, message in enumerate(messages):
            if not await self._send(message, queue=True):
                # The failed message was re-queued; keep the rest behind it.
                self._pending_messages.extend(messages[i + 1:])
                return
