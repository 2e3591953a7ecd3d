"""Transport layer for control-link.

This package contains the WebSocket IO used by the client.

Components:
- ws: WebSocket connection management
- ws_client: WebSocket message iteration and the ``Transport`` protocol
"""

from .ws import PROTOCOL_PING_INTERVAL, connect_websocket
from .ws_client import ControlLinkWsClient, Transport, WsMessage, WsMessageType

__all__ = [
    "PROTOCOL_PING_INTERVAL",
    "ControlLinkWsClient",
    "Transport",
    "WsMessage",
    "WsMessageType",
    "connect_websocket",
]
