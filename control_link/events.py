"""Publish/subscribe for client lifecycle notifications and pushed messages."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

_LOGGER = logging.getLogger(__name__)

Listener = Callable[..., Any]


class ClientEvent(str, Enum):
    """Events a client emits.

    Listener signatures:
        OPEN: ``()``
        CLOSE: ``(code: int | None, reason: str)``
        ERROR: ``(error: Exception)``
        MESSAGE: ``(envelope: Envelope)``
        STATE_CHANGE: ``(state: ConnectionState)``
        AUTHENTICATED: ``(credentials: Credentials)``
        AUTHENTICATION_FAILED: ``(error: str)``
    """

    OPEN = "open"
    CLOSE = "close"
    ERROR = "error"
    MESSAGE = "message"
    STATE_CHANGE = "state_change"
    AUTHENTICATED = "authenticated"
    AUTHENTICATION_FAILED = "authentication_failed"


class EventDispatcher:
    """Ordered listener lists per event, dispatched synchronously."""

    def __init__(self, *, name: str = "control-link") -> None:
        self._name = name
        self._listeners: dict[ClientEvent, list[Listener]] = {
            event: [] for event in ClientEvent
        }

    def on(self, event: ClientEvent | str, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for ``event``. Returns an unsubscribe function."""
        kind = ClientEvent(event)
        self._listeners[kind].append(listener)

        def remove() -> None:
            self.off(kind, listener)

        return remove

    def off(self, event: ClientEvent | str, listener: Listener) -> bool:
        """Remove one registration of ``listener``. Returns False if absent."""
        try:
            self._listeners[ClientEvent(event)].remove(listener)
        except ValueError:
            return False
        return True

    def clear(self, event: ClientEvent | str | None = None) -> None:
        if event is None:
            for listeners in self._listeners.values():
                listeners.clear()
        else:
            self._listeners[ClientEvent(event)].clear()

    def listener_count(self, event: ClientEvent | str) -> int:
        return len(self._listeners[ClientEvent(event)])

    def emit(self, event: ClientEvent, *args: Any) -> int:
        """Call every listener of ``event`` in registration order.

        A failing listener is logged and skipped.

        Returns:
            Number of listeners that completed without raising.
        """
        delivered = 0
        # Snapshot so listeners may (un)subscribe while being called.
        for listener in list(self._listeners[event]):
            try:
                listener(*args)
            except Exception as err:
                _LOGGER.exception(
                    "[%s] %s listener error: %s", self._name, event.value, err
                )
            else:
                delivered += 1
        return delivered
