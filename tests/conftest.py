"""Pytest configuration and fixtures for control_link tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from typing import Any
from uuid import uuid4

import pytest
import pytest_asyncio

from control_link import ClientConfig, ControlLinkClient
from control_link.protocol import RESPONSE_TYPES, MessageType, utc_timestamp
from control_link.transport import WsMessage, WsMessageType


class FakeTransport:
    """In-memory transport driven by the test.

    Frames the client writes are recorded in ``sent`` and can be awaited
    with :meth:`next_sent`. Frames for the client are queued with
    :meth:`push`, :meth:`push_closed` and :meth:`push_error`.
    """

    def __init__(self, *, fail_with: BaseException | None = None) -> None:
        self.fail_with = fail_with
        self.url: str | None = None
        self.connect_timeout: float | None = None
        self.closed = False
        self.sent: list[dict[str, Any]] = []
        self._incoming: asyncio.Queue[WsMessage] = asyncio.Queue()
        self._outgoing: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    async def connect(self, url: str, *, timeout: float = 15.0) -> None:
        self.url = url
        self.connect_timeout = timeout
        if self.fail_with is not None:
            raise self.fail_with

    async def close(self) -> None:
        self.closed = True

    async def send_text(self, data: str) -> None:
        frame = json.loads(data)
        self.sent.append(frame)
        self._outgoing.put_nowait(frame)

    def __aiter__(self) -> AsyncIterator[WsMessage]:
        return self._iter_messages()

    async def _iter_messages(self) -> AsyncIterator[WsMessage]:
        while True:
            msg = await self._incoming.get()
            yield msg
            if msg.type is not WsMessageType.TEXT:
                return

    def push(self, frame: dict[str, Any] | str) -> None:
        data = frame if isinstance(frame, str) else json.dumps(frame)
        self._incoming.put_nowait(WsMessage(WsMessageType.TEXT, data))

    def push_closed(self, code: int = 1006, reason: str = "") -> None:
        self._incoming.put_nowait(WsMessage(WsMessageType.CLOSED, code=code, reason=reason))

    def push_error(self, error: BaseException) -> None:
        self._incoming.put_nowait(WsMessage(WsMessageType.ERROR, error=error))

    async def next_sent(self, timeout: float = 1.0) -> dict[str, Any]:
        return await asyncio.wait_for(self._outgoing.get(), timeout)

    def reply(
        self,
        request: dict[str, Any],
        data: Any = None,
        *,
        success: bool = True,
        error: str | None = None,
    ) -> None:
        """Queue the response to ``request``."""
        frame: dict[str, Any] = {
            "id": str(uuid4()),
            "type": RESPONSE_TYPES[MessageType(request["type"])].value,
            "timestamp": utc_timestamp(),
            "requestId": request["id"],
            "success": success,
        }
        if success:
            if data is not None:
                frame["data"] = data
        else:
            frame["error"] = error
        self.push(frame)


class TransportFactory:
    """Hand a fresh :class:`FakeTransport` to every connection attempt."""

    def __init__(self) -> None:
        self.created: list[FakeTransport] = []
        self.failures: list[BaseException] = []

    def __call__(self) -> FakeTransport:
        fail_with = self.failures.pop(0) if self.failures else None
        transport = FakeTransport(fail_with=fail_with)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


def push_frame(msg_type: MessageType, payload: Any = None) -> dict[str, Any]:
    """Build a server push frame."""
    frame: dict[str, Any] = {
        "id": str(uuid4()),
        "type": msg_type.value,
        "timestamp": utc_timestamp(),
    }
    if payload is not None:
        frame["payload"] = payload
    return frame


LOGIN_DATA: dict[str, Any] = {
    "token": "jwt-token",
    "expiresIn": 3600,
    "tokenType": "Bearer",
    "scope": ["read", "write"],
    "user": {"username": "admin", "scope": ["read", "write"]},
}


async def settle(rounds: int = 5) -> None:
    """Let queued callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def transports() -> TransportFactory:
    return TransportFactory()


@pytest.fixture
def make_client(transports: TransportFactory) -> Callable[..., ControlLinkClient]:
    """Build clients with short timers and the fake transport."""

    def factory(**overrides: Any) -> ControlLinkClient:
        config = ClientConfig(
            url="ws://control.test:8080",
            reconnect_interval=0.01,
            reconnect_max_interval=0.04,
            max_reconnect_attempts=3,
            ping_interval=0,
            response_timeout=1.0,
            connect_timeout=1.0,
        )
        return ControlLinkClient(config.replace(**overrides), transport_factory=transports)

    return factory


@pytest_asyncio.fixture
async def client(
    make_client: Callable[..., ControlLinkClient],
) -> AsyncIterator[ControlLinkClient]:
    """Connected client; disconnected after the test."""
    client = make_client()
    assert await client.connect()
    yield client
    await client.disconnect()


async def wait_for(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll ``predicate`` until it holds or ``timeout`` expires."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)
