"""WebSocket client wrapper for control-link."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed

from ..errors import ControlLinkConnectionError
from .ws import connect_websocket

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

_LOGGER = logging.getLogger(__name__)


class WsMessageType(Enum):
    """Normalized WebSocket message types."""

    TEXT = "text"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class WsMessage:
    """Normalized WebSocket message payload.

    ``code``/``reason`` are set on ``CLOSED``; ``error`` on ``ERROR``.
    """

    type: WsMessageType
    data: str | None = None
    code: int | None = None
    reason: str = ""
    error: BaseException | None = None


class Transport(Protocol):
    """Duplex frame transport consumed by the client.

    ``connect`` returning means the transport opened. Iteration yields
    received frames and ends with exactly one ``CLOSED`` or ``ERROR``.
    """

    async def connect(self, url: str, *, timeout: float = ...) -> None: ...

    async def close(self) -> None: ...

    async def send_text(self, data: str) -> None: ...

    def __aiter__(self) -> AsyncIterator[WsMessage]: ...


class ControlLinkWsClient:
    """Wrapper around websockets library for control-link.

    Connection options are fixed per instance; the client builds one
    instance per connection attempt.
    """

    def __init__(
        self,
        *,
        ping_interval: float | None = None,
        close_timeout: float = 2.0,
        max_size: int | None = None,
    ) -> None:
        self._ping_interval = ping_interval
        self._close_timeout = close_timeout
        self._max_size = max_size
        self._ws: ClientConnection | None = None

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(self, url: str, *, timeout: float = 15.0) -> None:
        """Connect to the server websocket."""
        self._ws = await connect_websocket(
            url,
            timeout=timeout,
            ping_interval=self._ping_interval,
            close_timeout=self._close_timeout,
            max_size=self._max_size,
        )

    async def close(self) -> None:
        """Close the websocket connection."""
        if self._ws is not None:
            await self._ws.close()

    async def send_text(self, data: str) -> None:
        """Send one text frame."""
        if self._ws is None:
            raise ControlLinkConnectionError("WebSocket is not connected")
        try:
            await self._ws.send(data)
        except ConnectionClosed as err:
            raise ControlLinkConnectionError("WebSocket is closed") from err

    def __aiter__(self) -> AsyncIterator[WsMessage]:
        if self._ws is None:
            raise ControlLinkConnectionError("WebSocket is not connected")
        return self._iter_messages()

    async def _iter_messages(self) -> AsyncIterator[WsMessage]:
        if self._ws is None:
            raise ControlLinkConnectionError("WebSocket is not connected")

        try:
            async for msg in self._ws:
                normalized = self._normalize_message(msg)
                if normalized is None:
                    continue
                yield normalized
        except ConnectionClosed as err:
            _LOGGER.debug("WebSocket closed: %s", err)
            yield self._closed(err)
        except Exception as err:
            yield WsMessage(type=WsMessageType.ERROR, error=err)
        else:
            # Normal iteration completion means the peer closed gracefully.
            close = self._ws.close_rcvd if self._ws is not None else None
            yield WsMessage(
                type=WsMessageType.CLOSED,
                code=close.code if close is not None else None,
                reason=close.reason if close is not None else "",
            )

    @staticmethod
    def _closed(err: ConnectionClosed) -> WsMessage:
        close = err.rcvd
        return WsMessage(
            type=WsMessageType.CLOSED,
            code=close.code if close is not None else None,
            reason=close.reason if close is not None else "",
        )

    @staticmethod
    def _normalize_message(msg: Any) -> WsMessage | None:
        """Normalize received frames into WsMessage."""
        if isinstance(msg, str):
            return WsMessage(WsMessageType.TEXT, msg)
        if isinstance(msg, (bytes, bytearray, memoryview)):
            try:
                return WsMessage(WsMessageType.TEXT, bytes(msg).decode("utf-8"))
            except UnicodeDecodeError:
                _LOGGER.warning("Dropping binary frame that is not UTF-8 text")
                return None
        return None

