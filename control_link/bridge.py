"""Mirror client events into an application state store.

:class:`StateSyncBridge` subscribes to a :class:`ControlLinkClient` and turns
its notifications into :class:`SinkAction` records handed to a sink callable,
for example a reducer-style store's ``dispatch``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .errors import ControlLinkClientError
from .events import ClientEvent
from .payloads import ErrorEvent, StateChangedEvent
from .protocol import Envelope, MessageType
from .state import ConnectionState

if TYPE_CHECKING:
    from .auth import Credentials
    from .client import ControlLinkClient

_LOGGER = logging.getLogger(__name__)

CONNECTION_STATE_CHANGED = "websocket/connectionStateChanged"
AUTHENTICATED = "websocket/authenticated"
AUTHENTICATION_FAILED = "websocket/authenticationFailed"
REAL_TIME_UPDATE = "websocket/realTimeUpdate"
ERROR = "websocket/error"
UPDATE_STATE_BY_PATH = "UPDATE_STATE_BY_PATH"

# Snapshot section -> (action type, StateSnapshot attribute)
SECTION_ACTIONS: dict[str, tuple[str, str]] = {
    "ui": ("ui/setState", "ui_state"),
    "devices": ("devices/setState", "device_state"),
    "server": ("server/setState", "server_state"),
}

_REAL_TIME_TYPES = frozenset(
    {
        MessageType.STATE_CHANGED,
        MessageType.METRICS_UPDATE,
        MessageType.SERVER_STATUS_CHANGED,
    }
)


@dataclass(frozen=True)
class SinkAction:
    """One store action: a type tag and its payload."""

    type: str
    payload: Any = None


Sink = Callable[[SinkAction], Any]


class StateSyncBridge:
    """Forward connection, auth and push notifications to ``sink``.

    The bridge attaches on construction; :meth:`detach` removes every
    listener it registered. A sink that raises is logged and the bridge
    keeps running.
    """

    def __init__(self, client: ControlLinkClient, sink: Sink) -> None:
        self._client = client
        self._sink = sink
        self._unsubscribers: list[Callable[[], None]] = [
            client.on(ClientEvent.STATE_CHANGE, self._on_state_change),
            client.on(ClientEvent.AUTHENTICATED, self._on_authenticated),
            client.on(ClientEvent.AUTHENTICATION_FAILED, self._on_authentication_failed),
            client.on(ClientEvent.MESSAGE, self._on_message),
            client.on(ClientEvent.ERROR, self._on_error),
        ]

    @property
    def attached(self) -> bool:
        return bool(self._unsubscribers)

    def detach(self) -> None:
        while self._unsubscribers:
            self._unsubscribers.pop()()

    async def refresh_state(self, sections: Iterable[str] | None = None) -> bool:
        """Fetch a state snapshot and dispatch one ``setState`` per section.

        Returns:
            False if the request failed (an error action is dispatched).
        """
        wanted = tuple(sections) if sections is not None else tuple(SECTION_ACTIONS)
        try:
            snapshot = await self._client.get_state(wanted)
        except ControlLinkClientError as err:
            _LOGGER.warning("[%s] State refresh failed: %s", self._client.name, err)
            self.dispatch(SinkAction(ERROR, {"error": str(err)}))
            return False

        for section in wanted:
            action_type, attribute = SECTION_ACTIONS[section]
            value = getattr(snapshot, attribute)
            if value is not None:
                self.dispatch(SinkAction(action_type, value))
        return True

    def dispatch(self, action: SinkAction) -> None:
        try:
            self._sink(action)
        except Exception as err:
            _LOGGER.exception(
                "[%s] Sink failed on %s: %s", self._client.name, action.type, err
            )

    def _on_state_change(self, state: ConnectionState) -> None:
        self.dispatch(SinkAction(CONNECTION_STATE_CHANGED, {"state": state.value}))

    def _on_authenticated(self, credentials: Credentials) -> None:
        self.dispatch(SinkAction(AUTHENTICATED, {"token": credentials.token}))

    def _on_authentication_failed(self, error: str) -> None:
        self.dispatch(SinkAction(AUTHENTICATION_FAILED, {"error": error}))

    def _on_error(self, error: BaseException) -> None:
        self.dispatch(SinkAction(ERROR, {"error": str(error) or type(error).__name__}))

    def _on_message(self, envelope: Envelope) -> None:
        if envelope.type in _REAL_TIME_TYPES:
            self.dispatch(SinkAction(REAL_TIME_UPDATE, {"message": envelope}))
            if isinstance(envelope.payload, StateChangedEvent):
                self.dispatch(
                    SinkAction(
                        UPDATE_STATE_BY_PATH,
                        {"path": envelope.payload.path, "value": envelope.payload.value},
                    )
                )
        elif isinstance(envelope.payload, ErrorEvent):
            self.dispatch(SinkAction(ERROR, {"error": envelope.payload.error}))
