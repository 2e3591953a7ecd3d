"""Tests for connect_websocket error mapping."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from websockets.exceptions import InvalidHandshake, InvalidStatus, InvalidURI

from control_link.errors import (
    ControlLinkConnectionError,
    ControlLinkHandshakeError,
    ControlLinkTimeout,
)
from control_link.transport.ws import connect_websocket

PATCH_TARGET = "control_link.transport.ws.websockets.connect"


@pytest.mark.asyncio
async def test_connect_default_options():
    """Test protocol pings are off unless asked for."""
    connection = object()
    with patch(PATCH_TARGET, AsyncMock(return_value=connection)) as mock_connect:
        result = await connect_websocket("ws://localhost:8080")

    assert result is connection
    mock_connect.assert_called_once_with(
        "ws://localhost:8080",
        ping_interval=None,
        close_timeout=2.0,
        max_size=None,
    )


@pytest.mark.asyncio
async def test_connect_passes_options():
    """Test options reach websockets.connect."""
    with patch(PATCH_TARGET, AsyncMock(return_value=object())) as mock_connect:
        await connect_websocket(
            "wss://server:9443", ping_interval=20.0, close_timeout=1.0, max_size=1024
        )

    mock_connect.assert_called_once_with(
        "wss://server:9443",
        ping_interval=20.0,
        close_timeout=1.0,
        max_size=1024,
    )


@pytest.mark.asyncio
async def test_connect_timeout():
    """Test a slow handshake raises ControlLinkTimeout."""

    async def never(*_args, **_kwargs):
        await asyncio.sleep(10)

    with patch(PATCH_TARGET, never), pytest.raises(ControlLinkTimeout, match="timed out"):
        await connect_websocket("ws://localhost:8080", timeout=0.01)


@pytest.mark.asyncio
async def test_rejected_handshake_reports_status():
    """Test an HTTP rejection names the status code."""
    response = MagicMock(status_code=403)
    with (
        patch(PATCH_TARGET, AsyncMock(side_effect=InvalidStatus(response))),
        pytest.raises(ControlLinkHandshakeError, match="HTTP 403"),
    ):
        await connect_websocket("ws://localhost:8080")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (InvalidHandshake(), ControlLinkHandshakeError),
        (InvalidURI("ws//bad", "missing colon"), ControlLinkHandshakeError),
        (ConnectionRefusedError(), ControlLinkConnectionError),
    ],
)
async def test_connect_error_mapping(error, expected):
    """Test library errors map onto the client error hierarchy."""
    with patch(PATCH_TARGET, AsyncMock(side_effect=error)), pytest.raises(expected):
        await connect_websocket("ws://localhost:8080")
