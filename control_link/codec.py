"""JSON codec for control-link envelopes.

``encode_envelope`` turns an :class:`Envelope` (or :class:`Response`) into a
text frame; ``decode_frame`` validates a received frame against the tagged
union in :mod:`control_link.payloads`. Anything that does not match raises
:class:`ControlLinkProtocolError`.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from .errors import ControlLinkProtocolError
from .payloads import PUSH_SCHEMAS, REQUEST_SCHEMAS, RESPONSE_SCHEMAS
from .protocol import (
    REQUEST_TYPES,
    RESPONSE_ONLY_TYPES,
    Envelope,
    MessageType,
    Response,
)


def _to_wire(value: Any) -> Any:
    to_wire = getattr(value, "to_wire", None)
    if callable(to_wire):
        return to_wire()
    return value


def _parse(schema: type | None, raw: Any) -> Any:
    if schema is None:
        return raw
    return schema.from_wire(raw)  # type: ignore[attr-defined]


def _message_type(value: Any) -> MessageType:
    try:
        return MessageType(value)
    except ValueError as err:
        raise ControlLinkProtocolError(f"Unknown message type: {value!r}") from err


def coerce_request_payload(msg_type: MessageType | str, payload: Any) -> Any:
    """Validate an outbound request payload and return its typed form.

    Accepts either the typed payload object or its wire mapping.

    Raises:
        ControlLinkProtocolError: The type is not a request type or the
            payload does not match its shape.
    """
    kind = _message_type(msg_type)
    if kind not in REQUEST_TYPES:
        raise ControlLinkProtocolError(f"{kind.value} is not a request type")
    schema = REQUEST_SCHEMAS[kind]
    if schema is None:
        return payload if payload is not None else {}
    if isinstance(payload, schema):
        payload = payload.to_wire()
    try:
        return schema.from_wire(payload)  # type: ignore[attr-defined]
    except ValueError as err:
        raise ControlLinkProtocolError(f"Invalid {kind.value} payload: {err}") from err


def envelope_to_wire(envelope: Envelope) -> dict[str, Any]:
    """Convert an envelope into its JSON object form."""
    frame: dict[str, Any] = {
        "id": envelope.id,
        "type": envelope.type.value,
        "timestamp": envelope.timestamp,
    }
    if envelope.payload is not None:
        frame["payload"] = _to_wire(envelope.payload)
    if isinstance(envelope, Response):
        frame["requestId"] = envelope.request_id
        frame["success"] = envelope.success
        if envelope.success:
            if envelope.data is not None:
                frame["data"] = _to_wire(envelope.data)
        else:
            frame["error"] = envelope.error
    return frame


def encode_envelope(envelope: Envelope) -> str:
    """Serialize an envelope to a text frame."""
    try:
        return json.dumps(envelope_to_wire(envelope), separators=(",", ":"))
    except (TypeError, ValueError) as err:
        raise ControlLinkProtocolError(
            f"{envelope.type.value} payload is not JSON serializable: {err}"
        ) from err


def decode_frame(raw: str | bytes) -> Envelope:
    """Parse a received text frame.

    Returns a :class:`Response` for frames carrying ``requestId`` and a plain
    :class:`Envelope` otherwise.

    Raises:
        ControlLinkProtocolError: Malformed JSON, unknown type, missing
            envelope fields or a payload that does not match its shape.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as err:
            raise ControlLinkProtocolError("Frame is not valid UTF-8") from err
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError as err:
        raise ControlLinkProtocolError(f"Frame is not valid JSON: {err.msg}") from err
    if not isinstance(frame, Mapping):
        raise ControlLinkProtocolError("Frame must be a JSON object")
    return decode_message(frame)


def decode_message(frame: Mapping[str, Any]) -> Envelope:
    """Validate an already parsed JSON object. See :func:`decode_frame`."""
    msg_type = _message_type(frame.get("type"))
    msg_id = frame.get("id")
    if not isinstance(msg_id, str) or not msg_id:
        raise ControlLinkProtocolError(f"{msg_type.value} frame has no id")
    timestamp = frame.get("timestamp")
    if timestamp is None:
        timestamp = ""
    elif not isinstance(timestamp, str):
        raise ControlLinkProtocolError(f"{msg_type.value} frame has a non-string timestamp")

    request_id = frame.get("requestId")
    try:
        if request_id is not None:
            return _decode_response(frame, msg_type, msg_id, timestamp, request_id)
        if msg_type in RESPONSE_ONLY_TYPES:
            raise ControlLinkProtocolError(f"{msg_type.value} frame has no requestId")
        if msg_type in REQUEST_TYPES:
            raise ControlLinkProtocolError(
                f"{msg_type.value} is a client request and cannot be received"
            )
        raw_payload = frame.get("payload")
        if msg_type is MessageType.ERROR and raw_payload is None:
            raw_payload = {"error": frame.get("error")}
        payload = _parse(PUSH_SCHEMAS[msg_type], raw_payload)
    except ValueError as err:
        raise ControlLinkProtocolError(f"Invalid {msg_type.value} frame: {err}") from err

    return Envelope(id=msg_id, type=msg_type, timestamp=timestamp, payload=payload)


def _decode_response(
    frame: Mapping[str, Any],
    msg_type: MessageType,
    msg_id: str,
    timestamp: str,
    request_id: Any,
) -> Response:
    if not isinstance(request_id, str) or not request_id:
        raise ControlLinkProtocolError(f"{msg_type.value} frame has an invalid requestId")
    if msg_type not in RESPONSE_SCHEMAS:
        raise ControlLinkProtocolError(f"{msg_type.value} is not a response type")
    success = frame.get("success")
    if not isinstance(success, bool):
        raise ControlLinkProtocolError(f"{msg_type.value} response has no success flag")

    data = None
    error = None
    if success:
        try:
            data = _parse(RESPONSE_SCHEMAS[msg_type], frame.get("data"))
        except ValueError as err:
            raise ControlLinkProtocolError(
                f"Invalid {msg_type.value} data: {err}", request_id=request_id
            ) from err
    else:
        error = frame.get("error")
        if not isinstance(error, str) or not error:
            error = "Request failed"

    return Response(
        id=msg_id,
        type=msg_type,
        timestamp=timestamp,
        payload=frame.get("payload"),
        request_id=request_id,
        success=success,
        data=data,
        error=error,
    )
