"""Connection lifecycle state machine."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from .errors import ControlLinkStateError

_LOGGER = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Lifecycle states of a client connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    RECONNECTING = "reconnecting"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


# States in which the transport is open and requests may be sent.
OPEN_STATES: frozenset[ConnectionState] = frozenset(
    {ConnectionState.CONNECTED, ConnectionState.AUTHENTICATED}
)

# States in which connect() has nothing to do.
ACTIVE_STATES: frozenset[ConnectionState] = OPEN_STATES | {ConnectionState.CONNECTING}

_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset(
        {
            ConnectionState.CONNECTED,
            ConnectionState.RECONNECTING,
            ConnectionState.ERROR,
        }
    ),
    ConnectionState.CONNECTED: frozenset(
        {
            ConnectionState.AUTHENTICATED,
            ConnectionState.RECONNECTING,
        }
    ),
    ConnectionState.AUTHENTICATED: frozenset(
        {
            ConnectionState.CONNECTED,
            ConnectionState.RECONNECTING,
        }
    ),
    ConnectionState.RECONNECTING: frozenset(
        {ConnectionState.CONNECTING, ConnectionState.ERROR}
    ),
    ConnectionState.ERROR: frozenset({ConnectionState.CONNECTING}),
}


class ConnectionStateMachine:
    """Single writer of the connection state.

    Every accepted transition calls ``on_change(old, new)`` exactly once,
    synchronously, before ``transition`` returns. Moving to the current
    state is a no-op. ``DISCONNECTED`` is reachable from every state.
    """

    def __init__(
        self,
        on_change: Callable[[ConnectionState, ConnectionState], None] | None = None,
        *,
        name: str = "control-link",
    ) -> None:
        self._state = ConnectionState.DISCONNECTED
        self._on_change = on_change
        self._name = name
        self._generation = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def generation(self) -> int:
        """Counter identifying the current transport connection.

        Incremented on every entry into ``CONNECTED`` from ``CONNECTING``.
        """
        return self._generation

    @property
    def is_open(self) -> bool:
        return self._state in OPEN_STATES

    def can_transition(self, new_state: ConnectionState) -> bool:
        if new_state is self._state or new_state is ConnectionState.DISCONNECTED:
            return True
        return new_state in _TRANSITIONS[self._state]

    def transition(self, new_state: ConnectionState) -> bool:
        """Move to ``new_state``.

        Returns:
            True if the state changed, False if it already was ``new_state``.

        Raises:
            ControlLinkStateError: The transition is not allowed.
        """
        old_state = self._state
        if new_state is old_state:
            return False
        if not self.can_transition(new_state):
            raise ControlLinkStateError(
                f"Illegal transition {old_state.value} -> {new_state.value}"
            )

        if new_state is ConnectionState.CONNECTED and old_state is ConnectionState.CONNECTING:
            self._generation += 1

        _LOGGER.debug("[%s] State: %s → %s", self._name, old_state.value, new_state.value)
        self._state = new_state
        if self._on_change is not None:
            self._on_change(old_state, new_state)
        return True
