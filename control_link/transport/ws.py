"""Open WebSocket connections to a control server.

``connect_websocket`` wraps :func:`websockets.connect` and maps the library's
failures onto the control-link error hierarchy, so callers only handle
:class:`~control_link.errors.ControlLinkClientError` subclasses.
"""

from __future__ import annotations

import asyncio
import logging

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    InvalidHandshake,
    InvalidStatus,
    InvalidURI,
    WebSocketException,
)

from ..errors import (
    ControlLinkConnectionError,
    ControlLinkHandshakeError,
    ControlLinkTimeout,
)

_LOGGER = logging.getLogger(__name__)

# websockets' own keepalive period when it is enabled.
PROTOCOL_PING_INTERVAL = 20.0


async def connect_websocket(
    url: str,
    *,
    timeout: float = 15.0,
    ping_interval: float | None = None,
    close_timeout: float = 2.0,
    max_size: int | None = None,
) -> ClientConnection:
    """Connect to a control server WebSocket endpoint.

    Args:
        url: ``ws://`` or ``wss://`` URL
        timeout: Deadline for TCP connect plus opening handshake
        ping_interval: websockets protocol ping period; ``None`` leaves
            liveness to the application ping/pong messages
        close_timeout: Wait for the closing handshake
        max_size: Largest accepted frame; ``None`` for no limit
            (screenshots arrive as base64 text)
    """
    _LOGGER.debug("Opening WebSocket to %s", url)
    try:
        return await asyncio.wait_for(
            websockets.connect(
                url,
                ping_interval=ping_interval,
                close_timeout=close_timeout,
                max_size=max_size,
            ),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise ControlLinkTimeout(f"WebSocket connection to {url} timed out") from err
    except InvalidStatus as err:
        raise ControlLinkHandshakeError(
            f"WebSocket handshake rejected with HTTP {err.response.status_code}"
        ) from err
    except InvalidURI as err:
        raise ControlLinkHandshakeError(f"Invalid WebSocket URL {url!r}") from err
    except InvalidHandshake as err:
        raise ControlLinkHandshakeError(f"WebSocket handshake failed: {err}") from err
    except (OSError, WebSocketException) as err:
        raise ControlLinkConnectionError(f"WebSocket connection to {url} failed") from err
