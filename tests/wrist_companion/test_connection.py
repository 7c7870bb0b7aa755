"""
Tests for DeviceConnection.

Covers frame decoding, request dispatch, exactly-once responses, call
queueing and reconnection. The WebSocket is replaced by an AsyncMock or a
queue-fed FakeSocket.
"""

import asyncio
import json
import logging
from unittest.mock import AsyncMock, patch

import pytest
from websockets.exceptions import ConnectionClosedError

from wrist_companion.device import connection as connection_module
from wrist_companion.device.connection import ConnectionState, DeviceConnection


def _connected() -> tuple[DeviceConnection, AsyncMock]:
    conn = DeviceConnection(url="ws://localhost:8765")
    ws = AsyncMock()
    conn._ws = ws
    conn._state = ConnectionState.CONNECTED
    return conn, ws


def _sent(ws: AsyncMock) -> list[dict]:
    return [json.loads(call.args[0]) for call in ws.send.await_args_list]


class TestDecodeMessage:
    """Tests for _decode_message static method."""

    def test_text_frame(self):
        payload = {"type": "request", "id": 1, "payload": {"method": "GET_SENSORS_LIST"}}
        assert DeviceConnection._decode_message(json.dumps(payload)) == payload

    def test_binary_frame(self):
        payload = {"type": "request", "id": 2, "payload": {}}
        assert DeviceConnection._decode_message(json.dumps(payload).encode()) == payload

    def test_encoded_frame_is_utf8_bytes(self):
        frame = DeviceConnection._encode_message({"type": "call", "payload": {}})
        assert isinstance(frame, bytes)
        assert json.loads(frame) == {"type": "call", "payload": {}}

    def test_invalid_json_raises(self):
        with pytest.raises(ValueError):
            DeviceConnection._decode_message("not json")


class TestRequests:
    @pytest.mark.asyncio
    async def test_request_is_answered_with_same_id(self):
        conn, ws = _connected()

        async def handler(ctx):
            await ctx.respond({"data": {"result": ctx.payload["method"]}})

        conn.on_request(handler)
        conn._dispatch({"type": "request", "id": 42, "payload": {"method": "GET_SENSORS_LIST"}})
        await asyncio.gather(*conn._request_tasks)

        assert _sent(ws) == [{
            "type": "response",
            "id": 42,
            "payload": {"data": {"result": "GET_SENSORS_LIST"}},
        }]

    @pytest.mark.asyncio
    async def test_handler_fault_is_logged_without_response(self, caplog):
        conn, ws = _connected()
        conn.on_request(AsyncMock(side_effect=RuntimeError("boom")))

        with caplog.at_level(logging.ERROR, logger="wrist.companion.device.connection"):
            conn._dispatch({"type": "request", "id": 5, "payload": {}})
            await asyncio.gather(*conn._request_tasks)

        ws.send.assert_not_awaited()
        assert "Unhandled fault in request 5" in caplog.text

    @pytest.mark.asyncio
    async def test_non_request_frames_ignored(self):
        conn, _ = _connected()
        handler = AsyncMock()
        conn.on_request(handler)

        conn._dispatch({"type": "response", "id": 1, "payload": {}})

        assert conn._request_tasks == set()
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_disconnect_cancels_in_flight_requests(self):
        conn, ws = _connected()
        started = asyncio.Event()

        async def handler(ctx):
            started.set()
            await asyncio.sleep(10)

        conn.on_request(handler)
        conn._dispatch({"type": "request", "id": 1, "payload": {}})
        task = next(iter(conn._request_tasks))
        await started.wait()

        await conn.disconnect()

        assert task.cancelled()
        assert conn.state == ConnectionState.DISCONNECTED
        ws.close.assert_awaited_once()


class TestCalls:
    @pytest.mark.asyncio
    async def test_call_sent_when_connected(self):
        conn, ws = _connected()

        assert await conn.call({"action": "listUpdate", "value": []}) is True
        assert _sent(ws) == [{"type": "call", "payload": {"action": "listUpdate", "value": []}}]

    @pytest.mark.asyncio
    async def test_call_queued_when_disconnected(self):
        conn = DeviceConnection(url="ws://localhost:8765")

        assert await conn.call({"action": "listUpdate", "value": []}) is False
        assert conn.pending_count == 1

    @pytest.mark.asyncio
    async def test_pending_calls_flushed(self):
        conn = DeviceConnection(url="ws://localhost:8765")
        await conn.call({"action": "listUpdate", "value": []})

        ws = AsyncMock()
        conn._ws = ws
        conn._state = ConnectionState.CONNECTED
        await conn._flush_pending_messages()

        assert conn.pending_count == 0
        assert _sent(ws)[0]["type"] == "call"


# ---------------------------------------------------------------------------
# Reconnection lifecycle
# ---------------------------------------------------------------------------

class FakeSocket:
    """WebSocket stand-in fed through a queue; exceptions are raised by recv."""

    def __init__(self):
        self.frames: asyncio.Queue = asyncio.Queue()
        self.send = AsyncMock()
        self.close = AsyncMock()

    async def recv(self):
        item = await self.frames.get()
        if isinstance(item, Exception):
            raise item
        return item


def _closed() -> ConnectionClosedError:
    return ConnectionClosedError(None, None)


async def _wait_until(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        assert loop.time() < deadline, "condition not reached"
        await asyncio.sleep(0.01)


@pytest.fixture
def sockets():
    return [FakeSocket(), FakeSocket()]


@pytest.fixture
def fake_connect(sockets):
    with patch.object(
        connection_module.websockets,
        "connect",
        AsyncMock(side_effect=sockets),
    ) as mock_connect:
        yield mock_connect


class TestReconnect:
    @pytest.mark.asyncio
    async def test_receive_error_reconnects(self, sockets, fake_connect):
        conn = DeviceConnection(url="ws://localhost:8765", reconnect_interval=0)
        assert await conn.connect() is True

        await sockets[0].frames.put(_closed())
        await _wait_until(lambda: conn.is_connected and conn._ws is sockets[1])

        assert fake_connect.await_count == 2
        await conn.disconnect()

    @pytest.mark.asyncio
    async def test_send_failure_in_request_reconnects(self, sockets, fake_connect):
        conn = DeviceConnection(url="ws://localhost:8765", reconnect_interval=0)
        sockets[0].send.side_effect = _closed()
        handled = []

        async def handler(ctx):
            await ctx.respond({"data": {"result": []}})
            handled.append(ctx.request_id)

        conn.on_request(handler)
        await conn.connect()
        await sockets[0].frames.put(b'{"type": "request", "id": 3, "payload": {}}')

        await _wait_until(lambda: handled == [3])
        await _wait_until(lambda: conn.is_connected and conn._ws is sockets[1])

        assert conn._request_tasks == set()
        await conn.disconnect()

    @pytest.mark.asyncio
    async def test_failed_call_is_flushed_after_reconnect(self, sockets, fake_connect):
        conn = DeviceConnection(url="ws://localhost:8765", reconnect_interval=0)
        sockets[0].send.side_effect = _closed()
        await conn.connect()

        assert await conn.call({"action": "listUpdate", "value": []}) is False
        await _wait_until(lambda: sockets[1].send.await_count == 1)

        assert _sent(sockets[1]) == [{"type": "call", "payload": {"action": "listUpdate", "value": []}}]
        assert conn.pending_count == 0
        await conn.disconnect()

    @pytest.mark.asyncio
    async def test_unreachable_bridge_keeps_retrying(self, sockets):
        conn = DeviceConnection(url="ws://localhost:8765", reconnect_interval=0)
        attempts = AsyncMock(side_effect=[OSError("refused"), OSError("refused"), sockets[0]])

        with patch.object(connection_module.websockets, "connect", attempts):
            assert await conn.connect() is False
            assert conn.state == ConnectionState.RECONNECTING

            await _wait_until(lambda: conn.is_connected)

        assert attempts.await_count == 3
        await conn.disconnect()

    @pytest.mark.asyncio
    async def test_disconnect_stops_retrying(self):
        conn = DeviceConnection(url="ws://localhost:8765", reconnect_interval=60)

        with patch.object(connection_module.websockets, "connect", AsyncMock(side_effect=OSError("refused"))):
            await conn.connect()
            await conn.disconnect()

        assert conn.state == ConnectionState.DISCONNECTED
        assert conn._reconnect_task is None

    def test_backoff_is_capped(self):
        conn = DeviceConnection(url="ws://localhost:8765", reconnect_interval=5, max_reconnect_interval=60)

        delays = []
        for attempt in range(1, 7):
            conn._reconnect_attempts = attempt
            delays.append(conn._reconnect_delay())

        assert delays == [5, 10, 20, 40, 60, 60]


class TestPendingQueue:
    @pytest.mark.asyncio
    async def test_oldest_calls_dropped_when_full(self):
        conn = DeviceConnection(url="ws://localhost:8765", max_pending=2)

        for n in range(3):
            await conn.call({"action": "listUpdate", "value": [n]})

        assert conn.pending_count == 2
        assert [m["payload"]["value"] for m in conn._pending_messages] == [[1], [2]]


class TestUnansweredRequest:
    @pytest.mark.asyncio
    async def test_missing_response_is_logged(self, caplog):
        conn, ws = _connected()
        conn.on_request(AsyncMock(return_value=None))

        with caplog.at_level(logging.WARNING, logger="wrist.companion.device.connection"):
            conn._dispatch({"type": "request", "id": 8, "payload": {}})
            await asyncio.gather(*conn._request_tasks)

        assert "Request 8 finished without a response" in caplog.text


class TestSendFailureWithoutHandshake:
    @pytest.mark.asyncio
    async def test_send_error_schedules_reconnect(self):
        conn, ws = _connected()
        ws.send.side_effect = _closed()

        assert await conn.call({"action": "listUpdate", "value": []}) is False

        assert conn.state == ConnectionState.RECONNECTING
        assert conn.pending_count == 1
        await conn.disconnect()
        assert conn._reconnect_task is None
