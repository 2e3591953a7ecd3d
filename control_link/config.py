"""Client configuration.

Configuration is data: a frozen :class:`ClientConfig` built in code, from a
mapping, or from a YAML file. Keys may use snake_case or the camelCase names
of the JavaScript client (``reconnectInterval`` etc.). Millisecond values are
not accepted; every duration is in seconds.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .errors import ControlLinkClientError

DEFAULT_URL = "ws://localhost:8080"

_ALIASES: dict[str, str] = {
    "reconnectInterval": "reconnect_interval",
    "reconnectMaxInterval": "reconnect_max_interval",
    "maxReconnectAttempts": "max_reconnect_attempts",
    "pingInterval": "ping_interval",
    "pingTimeout": "ping_timeout",
    "maxMissedPongs": "max_missed_pongs",
    "responseTimeout": "response_timeout",
    "connectTimeout": "connect_timeout",
    "enableAutoReconnect": "auto_reconnect",
}


class ConfigLoadError(ControlLinkClientError):
    """Configuration file is missing or invalid."""


@dataclass(frozen=True)
class ClientConfig:
    """Connection settings for :class:`~control_link.client.ControlLinkClient`.

    Attributes:
        url: WebSocket URL of the control server.
        reconnect_interval: Delay before the first reconnect attempt (seconds).
        reconnect_max_interval: Upper bound for the doubled delay (seconds).
        max_reconnect_attempts: Attempts before giving up with ``ERROR``.
        ping_interval: Heartbeat period (seconds); ``0`` disables it.
        ping_timeout: Grace period for a pong after each ping window (seconds).
        max_missed_pongs: Missed windows that count as a dead connection.
        response_timeout: Per-request response deadline (seconds).
        connect_timeout: Transport open deadline (seconds).
        auto_reconnect: Reconnect after unexpected disconnects.
    """

    url: str = DEFAULT_URL
    reconnect_interval: float = 3.0
    reconnect_max_interval: float = 30.0
    max_reconnect_attempts: int = 10
    ping_interval: float = 30.0
    ping_timeout: float = 10.0
    max_missed_pongs: int = 3
    response_timeout: float = 30.0
    connect_timeout: float = 15.0
    auto_reconnect: bool = True

    def __post_init__(self) -> None:
        if not self.url.startswith(("ws://", "wss://")):
            raise ValueError(f"url must use ws:// or wss://, got {self.url!r}")
        if self.reconnect_interval <= 0:
            raise ValueError("reconnect_interval must be positive")
        if self.reconnect_max_interval < self.reconnect_interval:
            raise ValueError("reconnect_max_interval must be >= reconnect_interval")
        if self.max_reconnect_attempts < 0:
            raise ValueError("max_reconnect_attempts must not be negative")
        if self.ping_interval < 0 or self.ping_timeout < 0:
            raise ValueError("ping_interval and ping_timeout must not be negative")
        if self.max_missed_pongs < 1:
            raise ValueError("max_missed_pongs must be at least 1")
        if self.response_timeout <= 0:
            raise ValueError("response_timeout must be positive")
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be positive")

    @property
    def heartbeat_enabled(self) -> bool:
        return self.ping_interval > 0

    def replace(self, **changes: Any) -> ClientConfig:
        """Return a copy with ``changes`` applied (validated again)."""
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ClientConfig:
        """Build a config from a mapping, ignoring unknown keys."""
        known = {f.name for f in dataclasses.fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            name = _ALIASES.get(key, key)
            if name in known and value is not None:
                values[name] = value
        return cls(**values)


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file and return contents."""
    if not path.exists():
        raise ConfigLoadError(f"File not found: {path}")
    with path.open(encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as err:
            raise ConfigLoadError(f"Invalid YAML in {path}: {err}") from err
    if not isinstance(data, dict):
        raise ConfigLoadError(f"Expected a mapping in {path}")
    return data


def load_config(path: Path | str) -> ClientConfig:
    """Load client configuration from YAML.

    The settings may sit at the top level or under a ``control_link`` key.

    Raises:
        ConfigLoadError: File missing, not YAML, or values out of range.
    """
    path = Path(path)
    data = _load_yaml(path)
    section = data.get("control_link", data)
    if not isinstance(section, dict):
        raise ConfigLoadError(f"control_link section in {path} must be a mapping")
    try:
        return ClientConfig.from_mapping(section)
    except (TypeError, ValueError) as err:
        raise ConfigLoadError(f"Invalid configuration in {path}: {err}") from err
