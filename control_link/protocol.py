"""Protocol helpers for control-link message envelopes.

Every unit on the wire is an envelope ``{id, type, timestamp, payload}``.
Responses add ``{success, data?, error?, requestId}`` where ``requestId``
echoes the ``id`` of the request being answered.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class MessageType(str, Enum):
    """Closed set of envelope types."""

    # Connection management
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    PING = "ping"
    PONG = "pong"

    # Authentication
    AUTH_LOGIN = "auth_login"
    AUTH_LOGIN_RESPONSE = "auth_login_response"
    AUTH_VALIDATE = "auth_validate"
    AUTH_VALIDATE_RESPONSE = "auth_validate_response"
    AUTH_LOGOUT = "auth_logout"
    AUTH_LOGOUT_RESPONSE = "auth_logout_response"

    # State management
    GET_STATE = "get_state"
    GET_STATE_RESPONSE = "get_state_response"
    UPDATE_STATE = "update_state"
    UPDATE_STATE_RESPONSE = "update_state_response"
    STATE_CHANGED = "state_changed"

    # Actions
    EXECUTE_ACTION = "execute_action"
    EXECUTE_ACTION_RESPONSE = "execute_action_response"

    # Screenshot
    CAPTURE_SCREENSHOT = "capture_screenshot"
    CAPTURE_SCREENSHOT_RESPONSE = "capture_screenshot_response"

    # Health and metrics
    GET_HEALTH = "get_health"
    GET_HEALTH_RESPONSE = "get_health_response"
    GET_METRICS = "get_metrics"
    GET_METRICS_RESPONSE = "get_metrics_response"

    # Server push
    SERVER_STATUS_CHANGED = "server_status_changed"
    METRICS_UPDATE = "metrics_update"

    ERROR = "error"

    def __str__(self) -> str:
        return self.value


# Request type -> the response type the server answers with.
RESPONSE_TYPES: dict[MessageType, MessageType] = {
    MessageType.AUTH_LOGIN: MessageType.AUTH_LOGIN_RESPONSE,
    MessageType.AUTH_VALIDATE: MessageType.AUTH_VALIDATE_RESPONSE,
    MessageType.AUTH_LOGOUT: MessageType.AUTH_LOGOUT_RESPONSE,
    MessageType.GET_STATE: MessageType.GET_STATE_RESPONSE,
    MessageType.UPDATE_STATE: MessageType.UPDATE_STATE_RESPONSE,
    MessageType.EXECUTE_ACTION: MessageType.EXECUTE_ACTION_RESPONSE,
    MessageType.CAPTURE_SCREENSHOT: MessageType.CAPTURE_SCREENSHOT_RESPONSE,
    MessageType.GET_HEALTH: MessageType.GET_HEALTH_RESPONSE,
    MessageType.GET_METRICS: MessageType.GET_METRICS_RESPONSE,
}

REQUEST_TYPES: frozenset[MessageType] = frozenset(RESPONSE_TYPES)
RESPONSE_ONLY_TYPES: frozenset[MessageType] = frozenset(RESPONSE_TYPES.values())


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(tz=UTC).isoformat()


def new_message_id() -> str:
    """Generate a fresh envelope identifier."""
    return str(uuid.uuid4())


@dataclass(frozen=True, slots=True)
class Envelope:
    """A decoded envelope.

    ``payload`` holds the typed shape registered for ``type`` (see
    :mod:`control_link.payloads`), or the raw JSON value for opaque types.
    """

    id: str
    type: MessageType
    timestamp: str
    payload: Any = None

    @property
    def is_response(self) -> bool:
        return False


@dataclass(frozen=True, slots=True)
class Response(Envelope):
    """A correlated reply to an earlier request."""

    request_id: str = ""
    success: bool = False
    data: Any = None
    error: str | None = None

    @property
    def is_response(self) -> bool:
        return True


def build_envelope(
    msg_type: MessageType | str,
    payload: Any = None,
    *,
    msg_id: str | None = None,
    timestamp: str | None = None,
) -> Envelope:
    """Build an outbound envelope.

    Args:
        msg_type: Envelope type.
        payload: Typed payload or JSON-compatible value.
        msg_id: Optional caller-supplied identifier. Generated when omitted.
        timestamp: Optional ISO-8601 override.
    """
    return Envelope(
        id=msg_id or new_message_id(),
        type=MessageType(msg_type),
        timestamp=timestamp or utc_timestamp(),
        payload=payload,
    )


def build_response(
    request: Envelope,
    *,
    success: bool,
    data: Any = None,
    error: str | None = None,
    msg_type: MessageType | str | None = None,
) -> Response:
    """Build the response a server would send for ``request``.

    The response type defaults to the registered reply type of the request,
    falling back to ``error``.
    """
    if msg_type is None:
        msg_type = RESPONSE_TYPES.get(request.type, MessageType.ERROR)
    if not success and error is None:
        raise ValueError("error is required for failed responses")
    return Response(
        id=new_message_id(),
        type=MessageType(msg_type),
        timestamp=utc_timestamp(),
        request_id=request.id,
        success=success,
        data=data if success else None,
        error=None if success else error,
    )
