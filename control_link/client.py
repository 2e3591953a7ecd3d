"""High-level client for a control-link server.

This module provides the API applications use to talk to the control
server. It handles:
- Connection lifecycle and automatic reconnection
- Request/response correlation with per-request timeouts
- Login and credential ownership
- Application level keepalive
- Dispatch of server pushed messages to listeners

Usage:
    client = ControlLinkClient(ClientConfig(url="ws://localhost:8080"))
    client.on(ClientEvent.MESSAGE, handle_push)
    await client.connect()
    await client.login("admin", "secret")
    snapshot = await client.get_state(["ui"])
    await client.disconnect()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import Any

from .auth import AuthSession, Credentials
from .codec import coerce_request_payload, decode_frame, encode_envelope
from .config import ClientConfig
from .correlator import RequestCorrelator
from .errors import (
    ControlLinkClientError,
    ControlLinkConnectionError,
    ControlLinkConnectionLost,
    ControlLinkProtocolError,
    ControlLinkTimeout,
)
from .events import ClientEvent, EventDispatcher, Listener
from .payloads import (
    AuthValidateResult,
    CaptureScreenshotPayload,
    ConnectInfo,
    ExecuteActionPayload,
    ExecuteActionResult,
    GetStatePayload,
    HealthReport,
    MetricsReport,
    ScreenshotResult,
    StateSnapshot,
    UpdateStatePayload,
    UpdateStateResult,
)
from .protocol import Envelope, MessageType, Response, build_envelope
from .reconnect import ReconnectPolicy
from .state import ACTIVE_STATES, ConnectionState, ConnectionStateMachine
from .transport import PROTOCOL_PING_INTERVAL, ControlLinkWsClient, Transport, WsMessageType

_LOGGER = logging.getLogger(__name__)

TransportFactory = Callable[[], Transport]

CLIENT_CLOSE_CODE = 1000
_CLOSE_TIMEOUT = 2.0


class ControlLinkClient:
    """Connection to one control-link server.

    Every request is answered by exactly one outcome: its response, its
    timeout, or a connection-lost error when the link goes away first.
    Listeners registered with :meth:`on` are called synchronously; a listener
    that raises is logged and does not affect the others.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport_factory: TransportFactory | None = None,
        name: str = "control-link",
        **overrides: Any,
    ) -> None:
        """Initialize client.

        Args:
            config: Connection settings (defaults to :class:`ClientConfig`)
            transport_factory: Builds a fresh transport for every attempt
                (defaults to a WebSocket transport)
            name: Prefix for log records
            overrides: Individual :class:`ClientConfig` fields to replace
        """
        config = config or ClientConfig()
        if overrides:
            config = config.replace(**overrides)
        self._config = config
        self._name = name
        self._transport_factory = transport_factory or self._websocket_transport

        self._events = EventDispatcher(name=name)
        self._states = ConnectionStateMachine(self._on_state_change, name=name)
        self._reconnect = ReconnectPolicy(
            interval=config.reconnect_interval,
            max_interval=config.reconnect_max_interval,
            max_attempts=config.max_reconnect_attempts,
            name=name,
        )
        self._correlator = RequestCorrelator(name=name)
        self._auth = AuthSession(self.send, self._states, self._events, name=name)

        # Connection
        self._transport: Transport | None = None
        self._epoch = 0
        self._loop: asyncio.AbstractEventLoop | None = None
        self._connect_task: asyncio.Task[bool] | None = None
        self._listen_task: asyncio.Task[None] | None = None
        self._writer_task: asyncio.Task[None] | None = None
        self._outbox: asyncio.Queue[tuple[str, str | None]] | None = None
        self._server_client_id: str | None = None

        # Keepalive
        self._ping_task: asyncio.Task[None] | None = None
        self._ping_id = 0
        self._last_pong_time = 0.0
        self._missed_pong_windows = 0

    # -------------------------------------------------------------------------
    # Public API: Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> ConnectionState:
        return self._states.state

    @property
    def is_connected(self) -> bool:
        """True while the transport is open (connected or authenticated)."""
        return self._states.is_open

    @property
    def is_authenticated(self) -> bool:
        return self._auth.is_authenticated

    @property
    def credentials(self) -> Credentials | None:
        return self._auth.credentials

    @property
    def auth_token(self) -> str | None:
        return self._auth.token

    @property
    def server_client_id(self) -> str | None:
        """Client id assigned by the server's ``connect`` welcome."""
        return self._server_client_id

    @property
    def pending_count(self) -> int:
        return len(self._correlator)

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect.attempts

    # -------------------------------------------------------------------------
    # Public API: Connection Management
    # -------------------------------------------------------------------------

    async def connect(self, url: str | None = None) -> bool:
        """Open the connection.

        Does nothing while already connecting or connected. A pending
        reconnect attempt is replaced by this one.

        Args:
            url: Replace the configured URL before connecting

        Returns:
            True if the transport opened, False otherwise
        """
        if self._states.state in ACTIVE_STATES:
            _LOGGER.debug(
                "[%s] Connect ignored: already %s", self._name, self._states.state.value
            )
            return self._states.is_open

        if url is not None and url != self._config.url:
            self._config = self._config.replace(url=url)

        self._loop = asyncio.get_running_loop()
        self._reconnect.cancel()
        self._reconnect.reset()
        return await self._open()

    async def disconnect(self) -> None:
        """Close the connection and stop reconnecting.

        Pending requests are rejected before the state becomes
        ``DISCONNECTED``. Safe to call repeatedly.
        """
        if self._states.state is ConnectionState.DISCONNECTED and self._transport is None:
            return

        _LOGGER.info("[%s] Disconnecting", self._name)
        self._epoch += 1
        self._reconnect.cancel()
        was_open = self._states.is_open
        transport = self._transport
        self._transport = None
        self._release_connection("Client disconnected")

        connect_task, self._connect_task = self._connect_task, None
        if connect_task is not None and connect_task is not asyncio.current_task():
            connect_task.cancel()

        self._states.transition(ConnectionState.DISCONNECTED)
        if was_open:
            self._events.emit(ClientEvent.CLOSE, CLIENT_CLOSE_CODE, "Client disconnect")

        listen_task, self._listen_task = self._listen_task, None
        if listen_task is not None and listen_task is not asyncio.current_task():
            listen_task.cancel()

        if transport is not None:
            await self._close_transport(transport)

        for task in (connect_task, listen_task):
            if task is None or task is asyncio.current_task():
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as err:
                _LOGGER.debug("[%s] Task ended with %r during disconnect", self._name, err)

    async def __aenter__(self) -> ControlLinkClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()

    # -------------------------------------------------------------------------
    # Public API: Listeners
    # -------------------------------------------------------------------------

    def on(self, event: ClientEvent | str, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for ``event``. Returns an unsubscribe function."""
        return self._events.on(event, listener)

    def off(self, event: ClientEvent | str, listener: Listener) -> bool:
        return self._events.off(event, listener)

    # -------------------------------------------------------------------------
    # Public API: Requests
    # -------------------------------------------------------------------------

    def send(
        self,
        msg_type: MessageType | str,
        payload: Any = None,
        *,
        timeout: float | None = None,
    ) -> asyncio.Future[Any]:
        """Send a request and return a future for its response data.

        The future fails with :class:`ControlLinkConnectionError` when the
        client is not connected, :class:`ControlLinkProtocolError` for an
        invalid payload, :class:`ControlLinkResponseError` when the server
        reports failure, :class:`ControlLinkTimeout` when no response arrives
        in time, and :class:`ControlLinkConnectionLost` when the connection
        drops first.
        """
        loop = asyncio.get_running_loop()
        try:
            typed_payload = coerce_request_payload(msg_type, payload)
        except ControlLinkProtocolError as err:
            return self._failed_future(loop, err)

        if not self._states.is_open or self._outbox is None:
            return self._failed_future(loop, ControlLinkConnectionError("Not connected"))

        envelope = build_envelope(MessageType(msg_type), typed_payload)
        try:
            frame = encode_envelope(envelope)
        except ControlLinkProtocolError as err:
            return self._failed_future(loop, err)

        future = self._correlator.register(
            envelope,
            timeout if timeout is not None else self._config.response_timeout,
            loop=loop,
        )
        _LOGGER.debug("[%s] → %s id=%s", self._name, envelope.type.value, envelope.id)
        self._outbox.put_nowait((frame, envelope.id))
        return future

    async def login(self, username: str, password: str) -> Credentials:
        """Authenticate the current connection. See :meth:`AuthSession.login`."""
        return await self._auth.login(username, password)

    async def validate_token(self, token: str) -> AuthValidateResult:
        return await self._auth.validate_token(token)

    async def logout(self) -> None:
        await self._auth.logout()

    async def get_state(self, sections: Iterable[str] | None = None) -> StateSnapshot:
        payload = GetStatePayload(tuple(sections) if sections is not None else None)
        return await self.send(MessageType.GET_STATE, payload)

    async def update_state(self, path: str, value: Any) -> UpdateStateResult:
        return await self.send(MessageType.UPDATE_STATE, UpdateStatePayload(path, value))

    async def execute_action(
        self,
        action_type: str,
        target: str | None = None,
        payload: Any = None,
    ) -> ExecuteActionResult:
        return await self.send(
            MessageType.EXECUTE_ACTION,
            ExecuteActionPayload(type=action_type, target=target, payload=payload),
        )

    async def capture_screenshot(
        self,
        *,
        image_format: str | None = None,
        quality: int | None = None,
        width: int | None = None,
        height: int | None = None,
    ) -> ScreenshotResult:
        return await self.send(
            MessageType.CAPTURE_SCREENSHOT,
            CaptureScreenshotPayload(
                format=image_format,  # type: ignore[arg-type]
                quality=quality,
                width=width,
                height=height,
            ),
        )

    async def get_health(self) -> HealthReport:
        return await self.send(MessageType.GET_HEALTH)

    async def get_metrics(self) -> MetricsReport:
        return await self.send(MessageType.GET_METRICS)

    # -------------------------------------------------------------------------
    # Internal: Connection
    # -------------------------------------------------------------------------

    def _websocket_transport(self) -> Transport:
        # websockets' protocol pings only run when the ping/pong messages are off.
        return ControlLinkWsClient(
            ping_interval=None if self._config.heartbeat_enabled else PROTOCOL_PING_INTERVAL,
            close_timeout=_CLOSE_TIMEOUT,
        )

    async def _open(self) -> bool:
        """Run one connection attempt."""
        self._states.transition(ConnectionState.CONNECTING)
        epoch = self._epoch
        _LOGGER.info(
            "[%s] Connecting to %s (attempt #%d)",
            self._name,
            self._config.url,
            self._reconnect.attempts + 1,
        )

        transport = self._transport_factory()
        try:
            await transport.connect(self._config.url, timeout=self._config.connect_timeout)
        except (ControlLinkClientError, OSError) as err:
            if epoch != self._epoch:
                return False
            _LOGGER.warning("[%s] Connection failed: %s", self._name, err)
            self._events.emit(ClientEvent.ERROR, err)
            self._schedule_reconnect()
            return False

        if epoch != self._epoch:
            # disconnect() ran while the transport was opening
            await self._close_transport(transport)
            return False

        self._transport = transport
        self._server_client_id = None
        self._outbox = asyncio.Queue()
        self._reconnect.reset()
        self._states.transition(ConnectionState.CONNECTED)
        _LOGGER.info("[%s] Connected to %s", self._name, self._config.url)

        loop = asyncio.get_running_loop()
        self._listen_task = loop.create_task(self._listen(transport))
        self._writer_task = loop.create_task(self._write_frames(transport, self._outbox))
        self._start_keepalive()
        self._events.emit(ClientEvent.OPEN)
        return True

    def _schedule_reconnect(self) -> None:
        """Leave a failed or lost connection: retry, give up, or stop."""
        state = self._states.state
        if not self._config.auto_reconnect:
            self._states.transition(
                ConnectionState.ERROR
                if state is ConnectionState.CONNECTING
                else ConnectionState.DISCONNECTED
            )
            return

        if self._reconnect.exhausted:
            _LOGGER.error(
                "[%s] Giving up after %d reconnect attempts",
                self._name,
                self._reconnect.attempts,
            )
            if state is not ConnectionState.CONNECTING:
                self._states.transition(ConnectionState.RECONNECTING)
            self._states.transition(ConnectionState.ERROR)
            return

        self._states.transition(ConnectionState.RECONNECTING)
        self._reconnect.schedule(asyncio.get_running_loop(), self._on_reconnect_due)

    def _on_reconnect_due(self) -> None:
        if self._states.state is not ConnectionState.RECONNECTING or self._loop is None:
            return
        self._connect_task = self._loop.create_task(self._open())

    def _release_connection(self, reason: str) -> None:
        """Reject pending requests and drop per-connection state."""
        self._stop_keepalive()
        writer_task, self._writer_task = self._writer_task, None
        if writer_task is not None and writer_task is not asyncio.current_task():
            writer_task.cancel()
        self._outbox = None
        self._correlator.reject_all(ControlLinkConnectionLost, reason)
        self._auth.invalidate()

    def _on_transport_lost(
        self,
        code: int | None,
        reason: str,
        error: BaseException | None,
    ) -> None:
        """Handle a connection that ended without disconnect() being called."""
        transport, self._transport = self._transport, None
        if error is not None:
            _LOGGER.error("[%s] Connection error: %s", self._name, error)
            self._events.emit(ClientEvent.ERROR, error)
        else:
            _LOGGER.info(
                "[%s] Connection closed by server (code=%s, reason=%s)",
                self._name,
                code,
                reason or "-",
            )

        self._release_connection("Connection closed")
        listen_task, self._listen_task = self._listen_task, None
        if listen_task is not None and listen_task is not asyncio.current_task():
            listen_task.cancel()
        if transport is not None and self._loop is not None:
            self._loop.create_task(self._close_transport(transport))

        self._events.emit(ClientEvent.CLOSE, code, reason)
        self._schedule_reconnect()

    async def _close_transport(self, transport: Transport) -> None:
        try:
            await asyncio.wait_for(transport.close(), timeout=_CLOSE_TIMEOUT)
        except TimeoutError:
            _LOGGER.warning("[%s] WebSocket close timed out", self._name)
        except (ControlLinkClientError, OSError) as err:
            _LOGGER.debug("[%s] WebSocket close failed: %s", self._name, err)

    # -------------------------------------------------------------------------
    # Internal: Frames
    # -------------------------------------------------------------------------

    async def _listen(self, transport: Transport) -> None:
        """Read frames until the transport closes or fails."""
        code: int | None = None
        reason = ""
        error: BaseException | None = None
        message_count = 0

        try:
            async for msg in transport:
                if msg.type is WsMessageType.TEXT:
                    message_count += 1
                    self._handle_frame(msg.data or "")
                elif msg.type is WsMessageType.CLOSED:
                    code, reason = msg.code, msg.reason
                    break
                else:
                    error = msg.error or ControlLinkConnectionError("WebSocket error")
                    break
        except ControlLinkClientError as err:
            error = err
        except Exception as err:
            _LOGGER.exception("[%s] Listener error: %s", self._name, err)
            error = err

        _LOGGER.debug(
            "[%s] Listener finished after %d frames", self._name, message_count
        )
        if transport is self._transport:
            self._on_transport_lost(code, reason, error)

    def _handle_frame(self, raw: str) -> None:
        try:
            envelope = decode_frame(raw)
        except ControlLinkProtocolError as err:
            _LOGGER.warning("[%s] Dropping invalid frame: %s", self._name, err)
            if err.request_id is not None:
                self._correlator.fail(err.request_id, err)
            return

        if isinstance(envelope, Response):
            if not self._correlator.resolve(envelope):
                _LOGGER.debug(
                    "[%s] Dropping %s for unknown request %s",
                    self._name,
                    envelope.type.value,
                    envelope.request_id,
                )
            return

        if envelope.type is MessageType.PING:
            self._queue_frame(build_envelope(MessageType.PONG, envelope.payload))
            return
        if envelope.type is MessageType.PONG:
            self._handle_pong(envelope)
            return
        if envelope.type is MessageType.CONNECT and isinstance(envelope.payload, ConnectInfo):
            self._server_client_id = envelope.payload.client_id
            _LOGGER.debug(
                "[%s] Server assigned client id %s", self._name, self._server_client_id
            )

        self._events.emit(ClientEvent.MESSAGE, envelope)

    def _queue_frame(self, envelope: Envelope) -> None:
        if self._outbox is None:
            return
        self._outbox.put_nowait((encode_envelope(envelope), None))

    async def _write_frames(
        self,
        transport: Transport,
        outbox: asyncio.Queue[tuple[str, str | None]],
    ) -> None:
        """Write queued frames in order."""
        while True:
            frame, request_id = await outbox.get()
            try:
                await transport.send_text(frame)
            except (ControlLinkClientError, OSError) as err:
                _LOGGER.warning("[%s] Send failed: %s", self._name, err)
                if request_id is not None:
                    self._correlator.fail(
                        request_id, ControlLinkConnectionError(f"Failed to send: {err}")
                    )

    @staticmethod
    def _failed_future(
        loop: asyncio.AbstractEventLoop, exc: BaseException
    ) -> asyncio.Future[Any]:
        future: asyncio.Future[Any] = loop.create_future()
        future.set_exception(exc)
        return future

    # -------------------------------------------------------------------------
    # Internal: Keepalive
    # -------------------------------------------------------------------------

    def _start_keepalive(self) -> None:
        self._stop_keepalive()
        if not self._config.heartbeat_enabled:
            return
        loop = asyncio.get_running_loop()
        self._ping_id = 0
        self._missed_pong_windows = 0
        self._last_pong_time = loop.time()
        self._ping_task = loop.create_task(self._keepalive_loop())

    def _stop_keepalive(self) -> None:
        ping_task, self._ping_task = self._ping_task, None
        if ping_task is not None and ping_task is not asyncio.current_task():
            ping_task.cancel()

    async def _keepalive_loop(self) -> None:
        """Keepalive loop - send periodic pings."""
        interval = self._config.ping_interval
        loop = asyncio.get_running_loop()
        try:
            while True:
                await asyncio.sleep(interval)
                self._ping_id += 1
                self._queue_frame(build_envelope(MessageType.PING, {"id": self._ping_id}))

                since_pong = loop.time() - self._last_pong_time
                if since_pong <= interval + self._config.ping_timeout:
                    continue

                self._missed_pong_windows += 1
                _LOGGER.warning(
                    "[%s] Missed pong (%.1fs since last, %d windows)",
                    self._name,
                    since_pong,
                    self._missed_pong_windows,
                )
                if self._missed_pong_windows >= self._config.max_missed_pongs:
                    _LOGGER.error(
                        "[%s] Connection dead (%d missed pongs)",
                        self._name,
                        self._missed_pong_windows,
                    )
                    self._ping_task = None
                    self._on_transport_lost(
                        None, "Heartbeat timeout", ControlLinkTimeout("Heartbeat timeout")
                    )
                    return
        except asyncio.CancelledError:
            _LOGGER.debug("[%s] Keepalive cancelled", self._name)
            raise

    def _handle_pong(self, envelope: Envelope) -> None:
        if self._loop is not None:
            self._last_pong_time = self._loop.time()
        self._missed_pong_windows = 0
        _LOGGER.debug("[%s] Pong received: %s", self._name, envelope.payload)

    # -------------------------------------------------------------------------
    # Internal: State
    # -------------------------------------------------------------------------

    def _on_state_change(self, old: ConnectionState, new: ConnectionState) -> None:
        self._events.emit(ClientEvent.STATE_CHANGE, new)
