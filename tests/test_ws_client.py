"""Tests for ControlLinkWsClient WebSocket wrapper."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from websockets.exceptions import ConnectionClosed
from websockets.frames import Close

from control_link.errors import ControlLinkConnectionError, ControlLinkTimeout
from control_link.transport.ws_client import (
    ControlLinkWsClient,
    WsMessage,
    WsMessageType,
)

PATCH_TARGET = "control_link.transport.ws_client.connect_websocket"


class TestWsMessage:
    """Tests for WsMessage dataclass."""

    def test_enum_values(self):
        """Test enum has expected values."""
        assert WsMessageType.TEXT.value == "text"
        assert WsMessageType.CLOSED.value == "closed"
        assert WsMessageType.ERROR.value == "error"

    def test_create_closed_message(self):
        """Test creating a closed message."""
        msg = WsMessage(type=WsMessageType.CLOSED, code=1000, reason="bye")
        assert msg.data is None
        assert msg.code == 1000
        assert msg.reason == "bye"

    def test_message_is_frozen(self):
        """Test that messages are immutable."""
        msg = WsMessage(type=WsMessageType.TEXT, data="test")
        with pytest.raises(AttributeError):
            msg.data = "modified"  # type: ignore[misc]


class TestWsClientConnect:
    """Tests for ControlLinkWsClient.connect()."""

    @pytest.mark.asyncio
    async def test_connect_success(self):
        """Test successful WebSocket connection."""
        mock_ws = AsyncMock()

        with patch(PATCH_TARGET, return_value=mock_ws) as mock_connect:
            client = ControlLinkWsClient()
            await client.connect("ws://localhost:8080")

            mock_connect.assert_called_once_with(
                "ws://localhost:8080",
                timeout=15.0,
                ping_interval=None,
                close_timeout=2.0,
                max_size=None,
            )
            assert client.connected

    @pytest.mark.asyncio
    async def test_connect_custom_params(self):
        """Test connection with custom parameters."""
        with patch(PATCH_TARGET, return_value=AsyncMock()) as mock_connect:
            client = ControlLinkWsClient(ping_interval=20.0, close_timeout=1.0, max_size=4096)
            await client.connect("wss://server:9443", timeout=5.0)

            mock_connect.assert_called_once_with(
                "wss://server:9443",
                timeout=5.0,
                ping_interval=20.0,
                close_timeout=1.0,
                max_size=4096,
            )

    @pytest.mark.asyncio
    async def test_connect_propagates_errors(self):
        """Test that connection errors are propagated."""
        with patch(PATCH_TARGET, side_effect=ControlLinkTimeout("timed out")):
            client = ControlLinkWsClient()
            with pytest.raises(ControlLinkTimeout, match="timed out"):
                await client.connect("ws://localhost:8080")
            assert not client.connected


class TestWsClientSend:
    """Tests for close() and send_text()."""

    @pytest.mark.asyncio
    async def test_close_connected(self):
        """Test closing a connected client."""
        mock_ws = AsyncMock()

        with patch(PATCH_TARGET, return_value=mock_ws):
            client = ControlLinkWsClient()
            await client.connect("ws://localhost:8080")
            await client.close()

            mock_ws.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_close_not_connected(self):
        """Test closing when not connected (no error)."""
        await ControlLinkWsClient().close()

    @pytest.mark.asyncio
    async def test_send_text(self):
        """Test sending a text frame."""
        mock_ws = AsyncMock()

        with patch(PATCH_TARGET, return_value=mock_ws):
            client = ControlLinkWsClient()
            await client.connect("ws://localhost:8080")
            await client.send_text('{"type":"ping"}')

            mock_ws.send.assert_called_once_with('{"type":"ping"}')

    @pytest.mark.asyncio
    async def test_send_text_not_connected(self):
        """Test send_text raises when not connected."""
        with pytest.raises(ControlLinkConnectionError, match="not connected"):
            await ControlLinkWsClient().send_text("{}")

    @pytest.mark.asyncio
    async def test_send_text_closed(self):
        """Test send_text maps ConnectionClosed."""
        mock_ws = AsyncMock()
        mock_ws.send.side_effect = ConnectionClosed(None, None)

        with patch(PATCH_TARGET, return_value=mock_ws):
            client = ControlLinkWsClient()
            await client.connect("ws://localhost:8080")
            with pytest.raises(ControlLinkConnectionError, match="closed"):
                await client.send_text("{}")


class AsyncIteratorMock:
    """Helper class to create a proper async iterator mock."""

    def __init__(
        self,
        items: list,
        *,
        raise_on_iter: Exception | None = None,
        close_rcvd: Close | None = None,
    ):
        self._items = items
        self._index = 0
        self._raise_on_iter = raise_on_iter
        self.close_rcvd = close_rcvd
        self.close = AsyncMock()

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._index >= len(self._items):
            if self._raise_on_iter is not None:
                raise self._raise_on_iter
            raise StopAsyncIteration
        item = self._items[self._index]
        self._index += 1
        return item


async def collect(mock_ws: AsyncIteratorMock) -> list[WsMessage]:
    with patch(PATCH_TARGET, return_value=mock_ws):
        client = ControlLinkWsClient()
        await client.connect("ws://localhost:8080")
        return [msg async for msg in client]


class TestWsClientIteration:
    """Tests for ControlLinkWsClient async iteration."""

    def test_iter_not_connected(self):
        """Test iteration raises when not connected."""
        with pytest.raises(ControlLinkConnectionError, match="not connected"):
            ControlLinkWsClient().__aiter__()

    @pytest.mark.asyncio
    async def test_iter_text_then_graceful_close(self):
        """Test text frames are followed by CLOSED with the peer's close code."""
        messages = await collect(
            AsyncIteratorMock(["message1", "message2"], close_rcvd=Close(1000, "bye"))
        )

        assert [m.type for m in messages] == [
            WsMessageType.TEXT,
            WsMessageType.TEXT,
            WsMessageType.CLOSED,
        ]
        assert messages[0].data == "message1"
        assert messages[2].code == 1000
        assert messages[2].reason == "bye"

    @pytest.mark.asyncio
    async def test_iter_connection_closed(self):
        """Test iteration handles ConnectionClosed."""
        messages = await collect(
            AsyncIteratorMock(
                ["hello"],
                raise_on_iter=ConnectionClosed(Close(1011, "server error"), None),
            )
        )

        assert len(messages) == 2
        assert messages[1].type == WsMessageType.CLOSED
        assert messages[1].code == 1011
        assert messages[1].reason == "server error"

    @pytest.mark.asyncio
    async def test_iter_abnormal_close(self):
        """Test a close without a close frame has no code."""
        messages = await collect(
            AsyncIteratorMock([], raise_on_iter=ConnectionClosed(None, None))
        )

        assert len(messages) == 1
        assert messages[0].type == WsMessageType.CLOSED
        assert messages[0].code is None

    @pytest.mark.asyncio
    async def test_iter_unexpected_error(self):
        """Test iteration handles unexpected errors."""
        boom = RuntimeError("Unexpected")
        messages = await collect(AsyncIteratorMock([], raise_on_iter=boom))

        assert len(messages) == 1
        assert messages[0].type == WsMessageType.ERROR
        assert messages[0].error is boom

    @pytest.mark.asyncio
    async def test_iter_decodes_utf8_binary(self):
        """Test UTF-8 binary frames become text and others are dropped."""
        messages = await collect(
            AsyncIteratorMock(["text1", '{"a":1}'.encode(), b"\xff\xfe", "text2"])
        )

        text = [m.data for m in messages if m.type == WsMessageType.TEXT]
        assert text == ["text1", '{"a":1}', "text2"]


class TestWsClientNormalization:
    """Tests for ControlLinkWsClient message normalization."""

    def test_normalize_string_message(self):
        """Test normalizing a plain string."""
        result = ControlLinkWsClient._normalize_message("hello world")
        assert result == WsMessage(WsMessageType.TEXT, "hello world")

    def test_normalize_unknown_object(self):
        """Test unknown objects are skipped."""
        assert ControlLinkWsClient._normalize_message(object()) is None
