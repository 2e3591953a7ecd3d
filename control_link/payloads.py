"""Typed payload shapes for every message type.

Each shape is a frozen dataclass with ``from_wire`` (validate and convert a
decoded JSON object) and ``to_wire`` (produce the camelCase JSON object).
Validation failures raise ``ValueError``; the codec turns those into
``ControlLinkProtocolError``.

Device, action and state bodies are opaque JSON and are carried untouched.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal

from .protocol import MessageType

_MISSING = object()


def _mapping(raw: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        raise ValueError(f"{where} must be an object, got {type(raw).__name__}")
    return raw


def _field(
    raw: Mapping[str, Any],
    key: str,
    kinds: type | tuple[type, ...],
    where: str,
    *,
    default: Any = _MISSING,
) -> Any:
    """Read ``raw[key]`` and check its JSON type.

    A missing or ``null`` key returns ``default`` when one is given and
    raises otherwise. ``bool`` never satisfies a numeric kind.
    """
    value = raw.get(key)
    if value is None:
        if default is _MISSING:
            raise ValueError(f"{where}.{key} is required")
        return default
    if isinstance(value, bool) and bool not in _as_tuple(kinds):
        raise ValueError(f"{where}.{key} must not be a boolean")
    if not isinstance(value, kinds):
        raise ValueError(
            f"{where}.{key} has type {type(value).__name__}, expected {_kind_names(kinds)}"
        )
    return value


def _choice(
    raw: Mapping[str, Any],
    key: str,
    choices: tuple[str, ...],
    where: str,
    *,
    default: Any = _MISSING,
) -> Any:
    value = _field(raw, key, str, where, default=default)
    if value is not default and value not in choices:
        raise ValueError(f"{where}.{key} must be one of {', '.join(choices)}")
    return value


def _str_list(raw: Mapping[str, Any], key: str, where: str) -> tuple[str, ...]:
    values = _field(raw, key, list, where, default=[])
    for idx, value in enumerate(values):
        if not isinstance(value, str):
            raise ValueError(f"{where}.{key}[{idx}] must be a string")
    return tuple(values)


def _as_tuple(kinds: type | tuple[type, ...]) -> tuple[type, ...]:
    return kinds if isinstance(kinds, tuple) else (kinds,)


def _kind_names(kinds: type | tuple[type, ...]) -> str:
    return "|".join(kind.__name__ for kind in _as_tuple(kinds))


def _compact(body: dict[str, Any]) -> dict[str, Any]:
    """Drop keys whose value is ``None``."""
    return {key: value for key, value in body.items() if value is not None}


_NUMBER = (int, float)


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConnectInfo:
    """Welcome frame sent by the server after the socket opens."""

    client_id: str
    server_version: str | None = None
    supported_features: tuple[str, ...] = ()

    @classmethod
    def from_wire(cls, raw: Any) -> ConnectInfo:
        where = "connect"
        body = _mapping(raw, where)
        return cls(
            client_id=_field(body, "clientId", str, where),
            server_version=_field(body, "serverVersion", str, where, default=None),
            supported_features=_str_list(body, "supportedFeatures", where),
        )

    def to_wire(self) -> dict[str, Any]:
        return _compact(
            {
                "clientId": self.client_id,
                "serverVersion": self.server_version,
                "supportedFeatures": list(self.supported_features),
            }
        )


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthLoginPayload:
    username: str
    password: str = field(repr=False)

    @classmethod
    def from_wire(cls, raw: Any) -> AuthLoginPayload:
        where = "auth_login"
        body = _mapping(raw, where)
        return cls(
            username=_field(body, "username", str, where),
            password=_field(body, "password", str, where),
        )

    def to_wire(self) -> dict[str, Any]:
        return {"username": self.username, "password": self.password}


@dataclass(frozen=True)
class UserInfo:
    username: str
    scope: tuple[str, ...] = ()
    exp: int | None = None

    @classmethod
    def from_wire(cls, raw: Any, where: str = "user") -> UserInfo:
        body = _mapping(raw, where)
        return cls(
            username=_field(body, "username", str, where),
            scope=_str_list(body, "scope", where),
            exp=_field(body, "exp", int, where, default=None),
        )

    def to_wire(self) -> dict[str, Any]:
        body: dict[str, Any] = {"username": self.username}
        if self.scope:
            body["scope"] = list(self.scope)
        if self.exp is not None:
            body["exp"] = self.exp
        return body


@dataclass(frozen=True)
class AuthLoginResult:
    token: str = field(repr=False)
    expires_in: int
    token_type: str
    scope: tuple[str, ...]
    user: UserInfo

    @classmethod
    def from_wire(cls, raw: Any) -> AuthLoginResult:
        where = "auth_login_response"
        body = _mapping(raw, where)
        return cls(
            token=_field(body, "token", str, where),
            expires_in=_field(body, "expiresIn", int, where),
            token_type=_field(body, "tokenType", str, where, default="Bearer"),
            scope=_str_list(body, "scope", where),
            user=UserInfo.from_wire(_field(body, "user", Mapping, where), f"{where}.user"),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "expiresIn": self.expires_in,
            "tokenType": self.token_type,
            "scope": list(self.scope),
            "user": self.user.to_wire(),
        }


@dataclass(frozen=True)
class AuthValidatePayload:
    token: str = field(repr=False)

    @classmethod
    def from_wire(cls, raw: Any) -> AuthValidatePayload:
        where = "auth_validate"
        return cls(token=_field(_mapping(raw, where), "token", str, where))

    def to_wire(self) -> dict[str, Any]:
        return {"token": self.token}


@dataclass(frozen=True)
class AuthValidateResult:
    valid: bool
    user: UserInfo | None = None

    @classmethod
    def from_wire(cls, raw: Any) -> AuthValidateResult:
        where = "auth_validate_response"
        body = _mapping(raw, where)
        user = _field(body, "user", Mapping, where, default=None)
        return cls(
            valid=_field(body, "valid", bool, where),
            user=UserInfo.from_wire(user, f"{where}.user") if user is not None else None,
        )

    def to_wire(self) -> dict[str, Any]:
        body: dict[str, Any] = {"valid": self.valid}
        if self.user is not None:
            body["user"] = self.user.to_wire()
        return body


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------

StateSection = Literal["ui", "devices", "server"]
STATE_SECTIONS: tuple[str, ...] = ("ui", "devices", "server")


@dataclass(frozen=True)
class GetStatePayload:
    sections: tuple[str, ...] | None = None

    @classmethod
    def from_wire(cls, raw: Any) -> GetStatePayload:
        where = "get_state"
        body = _mapping(raw if raw is not None else {}, where)
        if body.get("sections") is None:
            return cls()
        sections = _str_list(body, "sections", where)
        unknown = [section for section in sections if section not in STATE_SECTIONS]
        if unknown:
            raise ValueError(f"{where}.sections has unknown entries: {', '.join(unknown)}")
        return cls(sections=sections)

    def to_wire(self) -> dict[str, Any]:
        if self.sections is None:
            return {}
        return {"sections": list(self.sections)}


@dataclass(frozen=True)
class StateSnapshot:
    ui_state: Any
    device_state: Any
    server_state: Any
    timestamp: str

    @classmethod
    def from_wire(cls, raw: Any) -> StateSnapshot:
        where = "get_state_response"
        body = _mapping(raw, where)
        return cls(
            ui_state=body.get("ui_state"),
            device_state=body.get("device_state"),
            server_state=body.get("server_state"),
            timestamp=_field(body, "timestamp", str, where),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "ui_state": self.ui_state,
            "device_state": self.device_state,
            "server_state": self.server_state,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class UpdateStatePayload:
    path: str
    value: Any

    @classmethod
    def from_wire(cls, raw: Any) -> UpdateStatePayload:
        where = "update_state"
        body = _mapping(raw, where)
        path = _field(body, "path", str, where)
        if not path:
            raise ValueError(f"{where}.path must not be empty")
        if "value" not in body:
            raise ValueError(f"{where}.value is required")
        return cls(path=path, value=body["value"])

    def to_wire(self) -> dict[str, Any]:
        return {"path": self.path, "value": self.value}


@dataclass(frozen=True)
class StateUpdate:
    path: str
    value: Any
    timestamp: str

    @classmethod
    def from_wire(cls, raw: Any, where: str = "updated") -> StateUpdate:
        body = _mapping(raw, where)
        return cls(
            path=_field(body, "path", str, where),
            value=body.get("value"),
            timestamp=_field(body, "timestamp", str, where),
        )

    def to_wire(self) -> dict[str, Any]:
        return {"path": self.path, "value": self.value, "timestamp": self.timestamp}


@dataclass(frozen=True)
class UpdateStateResult:
    updated: StateUpdate

    @classmethod
    def from_wire(cls, raw: Any) -> UpdateStateResult:
        where = "update_state_response"
        body = _mapping(raw, where)
        return cls(updated=StateUpdate.from_wire(body.get("updated"), f"{where}.updated"))

    def to_wire(self) -> dict[str, Any]:
        return {"updated": self.updated.to_wire()}


@dataclass(frozen=True)
class StateChangedEvent:
    path: str
    value: Any
    timestamp: str
    source: Literal["api", "ui", "system"]

    SOURCES: ClassVar[tuple[str, ...]] = ("api", "ui", "system")

    @classmethod
    def from_wire(cls, raw: Any) -> StateChangedEvent:
        where = "state_changed"
        body = _mapping(raw, where)
        return cls(
            path=_field(body, "path", str, where),
            value=body.get("value"),
            timestamp=_field(body, "timestamp", str, where),
            source=_choice(body, "source", cls.SOURCES, where),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "value": self.value,
            "timestamp": self.timestamp,
            "source": self.source,
        }


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExecuteActionPayload:
    type: str
    target: str | None = None
    payload: Any = None

    @classmethod
    def from_wire(cls, raw: Any) -> ExecuteActionPayload:
        where = "execute_action"
        body = _mapping(raw, where)
        return cls(
            type=_field(body, "type", str, where),
            target=_field(body, "target", str, where, default=None),
            payload=body.get("payload"),
        )

    def to_wire(self) -> dict[str, Any]:
        return _compact({"type": self.type, "target": self.target, "payload": self.payload})


@dataclass(frozen=True)
class ExecutedAction:
    type: str
    executed_at: str
    target: str | None = None
    payload: Any = None

    @classmethod
    def from_wire(cls, raw: Any, where: str = "action") -> ExecutedAction:
        body = _mapping(raw, where)
        return cls(
            type=_field(body, "type", str, where),
            executed_at=_field(body, "executedAt", str, where),
            target=_field(body, "target", str, where, default=None),
            payload=body.get("payload"),
        )

    def to_wire(self) -> dict[str, Any]:
        return _compact(
            {
                "type": self.type,
                "target": self.target,
                "payload": self.payload,
                "executedAt": self.executed_at,
            }
        )


@dataclass(frozen=True)
class ExecuteActionResult:
    action: ExecutedAction
    result: Any = None

    @classmethod
    def from_wire(cls, raw: Any) -> ExecuteActionResult:
        where = "execute_action_response"
        body = _mapping(raw, where)
        return cls(
            action=ExecutedAction.from_wire(body.get("action"), f"{where}.action"),
            result=body.get("result"),
        )

    def to_wire(self) -> dict[str, Any]:
        return _compact({"action": self.action.to_wire(), "result": self.result})


# ---------------------------------------------------------------------------
# Screenshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CaptureScreenshotPayload:
    format: Literal["png", "jpg"] | None = None
    quality: int | None = None
    width: int | None = None
    height: int | None = None

    @classmethod
    def from_wire(cls, raw: Any) -> CaptureScreenshotPayload:
        where = "capture_screenshot"
        body = _mapping(raw if raw is not None else {}, where)
        quality = _field(body, "quality", int, where, default=None)
        if quality is not None and not 0 <= quality <= 100:
            raise ValueError(f"{where}.quality must be between 0 and 100")
        return cls(
            format=_choice(body, "format", ("png", "jpg"), where, default=None),
            quality=quality,
            width=_field(body, "width", int, where, default=None),
            height=_field(body, "height", int, where, default=None),
        )

    def to_wire(self) -> dict[str, Any]:
        return _compact(
            {
                "format": self.format,
                "quality": self.quality,
                "width": self.width,
                "height": self.height,
            }
        )


@dataclass(frozen=True)
class ScreenshotMetadata:
    width: int
    height: int
    size: int

    @classmethod
    def from_wire(cls, raw: Any, where: str = "metadata") -> ScreenshotMetadata:
        body = _mapping(raw, where)
        return cls(
            width=_field(body, "width", int, where),
            height=_field(body, "height", int, where),
            size=_field(body, "size", int, where),
        )

    def to_wire(self) -> dict[str, Any]:
        return {"width": self.width, "height": self.height, "size": self.size}


@dataclass(frozen=True)
class ScreenshotResult:
    image_data: str = field(repr=False)
    format: str
    captured_at: str
    metadata: ScreenshotMetadata

    @classmethod
    def from_wire(cls, raw: Any) -> ScreenshotResult:
        where = "capture_screenshot_response"
        body = _mapping(raw, where)
        return cls(
            image_data=_field(body, "imageData", str, where),
            format=_field(body, "format", str, where),
            captured_at=_field(body, "capturedAt", str, where),
            metadata=ScreenshotMetadata.from_wire(body.get("metadata"), f"{where}.metadata"),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "imageData": self.image_data,
            "format": self.format,
            "capturedAt": self.captured_at,
            "metadata": self.metadata.to_wire(),
        }


# ---------------------------------------------------------------------------
# Health and metrics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HealthReport:
    status: str
    uptime: float
    timestamp: str
    server_version: str
    server_connections: int
    device_count: int
    current_screen: str

    @classmethod
    def from_wire(cls, raw: Any) -> HealthReport:
        where = "get_health_response"
        body = _mapping(raw, where)
        server = _mapping(body.get("server"), f"{where}.server")
        app_state = _mapping(body.get("appState"), f"{where}.appState")
        return cls(
            status=_field(body, "status", str, where),
            uptime=_field(body, "uptime", _NUMBER, where),
            timestamp=_field(body, "timestamp", str, where),
            server_version=_field(server, "version", str, f"{where}.server"),
            server_connections=_field(server, "connections", int, f"{where}.server"),
            device_count=_field(app_state, "deviceCount", int, f"{where}.appState"),
            current_screen=_field(app_state, "currentScreen", str, f"{where}.appState"),
        )

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"

    def to_wire(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "uptime": self.uptime,
            "timestamp": self.timestamp,
            "server": {"version": self.server_version, "connections": self.server_connections},
            "appState": {
                "deviceCount": self.device_count,
                "currentScreen": self.current_screen,
            },
        }


@dataclass(frozen=True)
class ConnectionCounts:
    total: int
    active: int
    authenticated: int


@dataclass(frozen=True)
class MessageCounts:
    total: int
    successful: int
    errors: int
    average_response_time: float


@dataclass(frozen=True)
class MemoryUsage:
    used: float
    total: float


@dataclass(frozen=True)
class MetricsReport:
    connections: ConnectionCounts
    messages: MessageCounts
    uptime: float
    memory_usage: MemoryUsage | None = None

    @classmethod
    def from_wire(cls, raw: Any, where: str = "get_metrics_response") -> MetricsReport:
        body = _mapping(raw, where)
        conns = _mapping(body.get("connections"), f"{where}.connections")
        msgs = _mapping(body.get("messages"), f"{where}.messages")
        memory = body.get("memoryUsage")
        memory_usage = None
        if memory is not None:
            mem = _mapping(memory, f"{where}.memoryUsage")
            memory_usage = MemoryUsage(
                used=_field(mem, "used", _NUMBER, f"{where}.memoryUsage"),
                total=_field(mem, "total", _NUMBER, f"{where}.memoryUsage"),
            )
        return cls(
            connections=ConnectionCounts(
                total=_field(conns, "total", int, f"{where}.connections"),
                active=_field(conns, "active", int, f"{where}.connections"),
                authenticated=_field(conns, "authenticated", int, f"{where}.connections"),
            ),
            messages=MessageCounts(
                total=_field(msgs, "total", int, f"{where}.messages"),
                successful=_field(msgs, "successful", int, f"{where}.messages"),
                errors=_field(msgs, "errors", int, f"{where}.messages"),
                average_response_time=_field(
                    msgs, "averageResponseTime", _NUMBER, f"{where}.messages"
                ),
            ),
            uptime=_field(body, "uptime", _NUMBER, where),
            memory_usage=memory_usage,
        )

    def to_wire(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "connections": {
                "total": self.connections.total,
                "active": self.connections.active,
                "authenticated": self.connections.authenticated,
            },
            "messages": {
                "total": self.messages.total,
                "successful": self.messages.successful,
                "errors": self.messages.errors,
                "averageResponseTime": self.messages.average_response_time,
            },
            "uptime": self.uptime,
        }
        if self.memory_usage is not None:
            body["memoryUsage"] = {
                "used": self.memory_usage.used,
                "total": self.memory_usage.total,
            }
        return body


# ---------------------------------------------------------------------------
# Server push
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ServerStatusEvent:
    status: Literal["starting", "running", "stopping", "stopped", "error"]
    timestamp: str
    details: str | None = None

    STATUSES: ClassVar[tuple[str, ...]] = ("starting", "running", "stopping", "stopped", "error")

    @classmethod
    def from_wire(cls, raw: Any) -> ServerStatusEvent:
        where = "server_status_changed"
        body = _mapping(raw, where)
        return cls(
            status=_choice(body, "status", cls.STATUSES, where),
            timestamp=_field(body, "timestamp", str, where),
            details=_field(body, "details", str, where, default=None),
        )

    def to_wire(self) -> dict[str, Any]:
        return _compact({"status": self.status, "details": self.details, "timestamp": self.timestamp})


@dataclass(frozen=True)
class MetricsUpdateEvent:
    metrics: MetricsReport
    timestamp: str

    @classmethod
    def from_wire(cls, raw: Any) -> MetricsUpdateEvent:
        where = "metrics_update"
        body = _mapping(raw, where)
        return cls(
            metrics=MetricsReport.from_wire(body.get("metrics"), f"{where}.metrics"),
            timestamp=_field(body, "timestamp", str, where),
        )

    def to_wire(self) -> dict[str, Any]:
        return {"metrics": self.metrics.to_wire(), "timestamp": self.timestamp}


@dataclass(frozen=True)
class ErrorEvent:
    """Uncorrelated ``error`` frame (e.g. the server could not parse a request)."""

    error: str

    @classmethod
    def from_wire(cls, raw: Any) -> ErrorEvent:
        body = raw if isinstance(raw, Mapping) else {}
        message = body.get("error") or body.get("message") or "Unknown error"
        return cls(error=str(message))

    def to_wire(self) -> dict[str, Any]:
        return {"error": self.error}


# ---------------------------------------------------------------------------
# Registries
# ---------------------------------------------------------------------------

# ``None`` marks opaque payloads that are carried as raw JSON.
REQUEST_SCHEMAS: dict[MessageType, type | None] = {
    MessageType.AUTH_LOGIN: AuthLoginPayload,
    MessageType.AUTH_VALIDATE: AuthValidatePayload,
    MessageType.AUTH_LOGOUT: None,
    MessageType.GET_STATE: GetStatePayload,
    MessageType.UPDATE_STATE: UpdateStatePayload,
    MessageType.EXECUTE_ACTION: ExecuteActionPayload,
    MessageType.CAPTURE_SCREENSHOT: CaptureScreenshotPayload,
    MessageType.GET_HEALTH: None,
    MessageType.GET_METRICS: None,
}

RESPONSE_SCHEMAS: dict[MessageType, type | None] = {
    MessageType.AUTH_LOGIN_RESPONSE: AuthLoginResult,
    MessageType.AUTH_VALIDATE_RESPONSE: AuthValidateResult,
    MessageType.AUTH_LOGOUT_RESPONSE: None,
    MessageType.GET_STATE_RESPONSE: StateSnapshot,
    MessageType.UPDATE_STATE_RESPONSE: UpdateStateResult,
    MessageType.EXECUTE_ACTION_RESPONSE: ExecuteActionResult,
    MessageType.CAPTURE_SCREENSHOT_RESPONSE: ScreenshotResult,
    MessageType.GET_HEALTH_RESPONSE: HealthReport,
    MessageType.GET_METRICS_RESPONSE: MetricsReport,
    MessageType.ERROR: None,
}

PUSH_SCHEMAS: dict[MessageType, type | None] = {
    MessageType.CONNECT: ConnectInfo,
    MessageType.DISCONNECT: None,
    MessageType.PING: None,
    MessageType.PONG: None,
    MessageType.STATE_CHANGED: StateChangedEvent,
    MessageType.SERVER_STATUS_CHANGED: ServerStatusEvent,
    MessageType.METRICS_UPDATE: MetricsUpdateEvent,
    MessageType.ERROR: ErrorEvent,
}
