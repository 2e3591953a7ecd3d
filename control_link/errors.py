"""Client error types for control-link server interactions."""

from __future__ import annotations


class ControlLinkClientError(Exception):
    """Base error for control-link client failures."""


class ControlLinkConnectionError(ControlLinkClientError):
    """Network connection to the control server failed or is unavailable."""


class ControlLinkConnectionLost(ControlLinkConnectionError):
    """The connection dropped before a pending request was answered."""


class ControlLinkHandshakeError(ControlLinkConnectionError):
    """WebSocket handshake failed."""


class ControlLinkTimeout(ControlLinkClientError):
    """Timeout while communicating with the control server."""

    def __init__(
        self,
        message: str,
        *,
        request_id: str | None = None,
        message_type: str | None = None,
    ) -> None:
        super().__init__(message)
        self.request_id = request_id
        self.message_type = message_type


class ControlLinkProtocolError(ControlLinkClientError):
    """A frame or payload does not match the message schema.

    ``request_id`` is set when the rejected frame carried a ``requestId``.
    """

    def __init__(self, message: str, *, request_id: str | None = None) -> None:
        super().__init__(message)
        self.request_id = request_id


class ControlLinkAuthError(ControlLinkClientError):
    """Login was rejected or could not be completed."""


class ControlLinkResponseError(ControlLinkClientError):
    """The server answered a request with ``success: false``."""

    def __init__(
        self,
        error: str,
        *,
        request_id: str | None = None,
        message_type: str | None = None,
    ) -> None:
        super().__init__(error)
        self.error = error
        self.request_id = request_id
        self.message_type = message_type


class ControlLinkStateError(ControlLinkClientError):
    """An illegal connection state transition was requested."""
