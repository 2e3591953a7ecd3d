"""Match asynchronous responses to pending requests."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .errors import ControlLinkProtocolError, ControlLinkResponseError, ControlLinkTimeout
from .protocol import RESPONSE_TYPES, Envelope, MessageType, Response

_LOGGER = logging.getLogger(__name__)


def _answers(request_type: MessageType, response: Response) -> bool:
    """Whether ``response`` may settle a request of ``request_type``."""
    if response.type is MessageType.ERROR:
        return not response.success
    return response.type is RESPONSE_TYPES.get(request_type)


@dataclass(slots=True)
class PendingRequest:
    """Outstanding request awaiting its response."""

    id: str
    type: MessageType
    sent_at: float
    expires_at: float
    future: asyncio.Future[Any]
    timer: asyncio.TimerHandle | None = None


class RequestCorrelator:
    """Own the pending-request map.

    Every registered future is settled exactly once: by a matching response,
    by its own timeout, by :meth:`reject_all`, or by :meth:`fail`. A caller
    cancelling the future removes the entry as well.
    """

    def __init__(self, *, name: str = "control-link") -> None:
        self._name = name
        self._pending: dict[str, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    def register(
        self,
        envelope: Envelope,
        timeout: float,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> asyncio.Future[Any]:
        """Track ``envelope`` and return the future for its response data."""
        if envelope.id in self._pending:
            raise ValueError(f"Request id {envelope.id} is already pending")

        loop = loop or asyncio.get_running_loop()
        now = time.monotonic()
        future: asyncio.Future[Any] = loop.create_future()
        entry = PendingRequest(
            id=envelope.id,
            type=envelope.type,
            sent_at=now,
            expires_at=now + timeout,
            future=future,
        )
        entry.timer = loop.call_later(timeout, self._expire, envelope.id)
        self._pending[envelope.id] = entry
        future.add_done_callback(lambda fut, request_id=envelope.id: self._on_done(request_id, fut))
        return future

    def resolve(self, response: Response) -> bool:
        """Settle the request ``response`` answers.

        Returns:
            False when no request with that id is pending.
        """
        entry = self._pop(response.request_id)
        if entry is None:
            return False

        latency = time.monotonic() - entry.sent_at
        if entry.future.done():
            return True
        if not _answers(entry.type, response):
            _LOGGER.warning(
                "[%s] %s answered with %s id=%s",
                self._name,
                entry.type.value,
                response.type.value,
                entry.id,
            )
            entry.future.set_exception(
                ControlLinkProtocolError(
                    f"Unexpected {response.type.value} for {entry.type.value}",
                    request_id=entry.id,
                )
            )
        elif response.success:
            _LOGGER.debug(
                "[%s] %s ok id=%s (%.3fs)", self._name, entry.type.value, entry.id, latency
            )
            entry.future.set_result(response.data)
        else:
            _LOGGER.debug(
                "[%s] %s failed id=%s: %s", self._name, entry.type.value, entry.id, response.error
            )
            entry.future.set_exception(
                ControlLinkResponseError(
                    response.error or "Request failed",
                    request_id=entry.id,
                    message_type=entry.type.value,
                )
            )
        return True

    def fail(self, request_id: str, exc: BaseException) -> bool:
        """Reject a single pending request, e.g. when its frame could not be sent."""
        entry = self._pop(request_id)
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.set_exception(exc)
        return True

    def reject_all(
        self, exc_factory: Callable[[str], BaseException], reason: str
    ) -> int:
        """Reject every pending request.

        Args:
            exc_factory: Builds the error from ``reason`` (usually an
                exception class).
            reason: Human readable cause.

        Returns:
            Number of requests rejected.
        """
        entries = list(self._pending.values())
        self._pending.clear()
        for entry in entries:
            if entry.timer is not None:
                entry.timer.cancel()
            if not entry.future.done():
                entry.future.set_exception(exc_factory(reason))
        if entries:
            _LOGGER.info("[%s] Rejected %d pending request(s): %s", self._name, len(entries), reason)
        return len(entries)

    def _expire(self, request_id: str) -> None:
        entry = self._pending.pop(request_id, None)
        if entry is None:
            return
        entry.timer = None
        _LOGGER.warning(
            "[%s] %s timed out id=%s", self._name, entry.type.value, entry.id
        )
        if not entry.future.done():
            entry.future.set_exception(
                ControlLinkTimeout(
                    "Request timeout",
                    request_id=entry.id,
                    message_type=entry.type.value,
                )
            )

    def _pop(self, request_id: str) -> PendingRequest | None:
        entry = self._pending.pop(request_id, None)
        if entry is not None and entry.timer is not None:
            entry.timer.cancel()
            entry.timer = None
        return entry

    def _on_done(self, request_id: str, future: asyncio.Future[Any]) -> None:
        # Only cancellation by the caller leaves the entry in place.
        if future.cancelled() and self._pop(request_id) is not None:
            _LOGGER.debug("[%s] Request cancelled by caller id=%s", self._name, request_id)
