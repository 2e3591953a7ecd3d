"""Async client for the control-link WebSocket protocol."""

__version__ = "0.1.0"

from .auth import AuthSession, Credentials
from .bridge import SinkAction, StateSyncBridge
from .client import ControlLinkClient
from .codec import decode_frame, encode_envelope
from .config import ClientConfig, ConfigLoadError, load_config
from .errors import (
    ControlLinkAuthError,
    ControlLinkClientError,
    ControlLinkConnectionError,
    ControlLinkConnectionLost,
    ControlLinkHandshakeError,
    ControlLinkProtocolError,
    ControlLinkResponseError,
    ControlLinkStateError,
    ControlLinkTimeout,
)
from .events import ClientEvent
from .protocol import Envelope, MessageType, Response, build_envelope, build_response
from .state import ConnectionState

__all__ = [
    "AuthSession",
    "ClientConfig",
    "ClientEvent",
    "ConfigLoadError",
    "ConnectionState",
    "ControlLinkAuthError",
    "ControlLinkClient",
    "ControlLinkClientError",
    "ControlLinkConnectionError",
    "ControlLinkConnectionLost",
    "ControlLinkHandshakeError",
    "ControlLinkProtocolError",
    "ControlLinkResponseError",
    "ControlLinkStateError",
    "ControlLinkTimeout",
    "Credentials",
    "Envelope",
    "MessageType",
    "Response",
    "SinkAction",
    "StateSyncBridge",
    "__version__",
    "build_envelope",
    "build_response",
    "decode_frame",
    "encode_envelope",
    "load_config",
]
